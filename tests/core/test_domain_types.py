"""Tests for domain enums and job-type parsing.

Tests:
    - Every JobType parses from its wire name
    - Unknown names raise UnknownJobTypeError carrying the name
    - JobType values are the queue's wire names
"""

import pytest

from gatehouse.core.domain_types import JobState, JobType, parse_job_type
from gatehouse.core.errors import UnknownJobTypeError


@pytest.mark.parametrize("job_type", list(JobType))
def test_parse_job_type_round_trips_every_member(job_type):
    assert parse_job_type(job_type.value) is job_type


def test_parse_job_type_rejects_unknown_name():
    with pytest.raises(UnknownJobTypeError) as exc_info:
        parse_job_type("email:newsletter")
    assert exc_info.value.job_type == "email:newsletter"
    assert exc_info.value.code == "UNKNOWN_JOB_TYPE"


def test_job_type_wire_names():
    assert {t.value for t in JobType} == {
        "email:verification",
        "email:password-reset",
        "email:welcome",
        "email:account-locked",
        "email:invitation",
    }


def test_job_states():
    assert [s.value for s in JobState] == ["waiting", "active", "completed", "failed"]
