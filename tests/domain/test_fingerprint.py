"""
Tests for duplicate-detection fingerprints.

Property tests use hypothesis: the fingerprint depends on the creation
hour, not the minute, and on every identity field.
"""

import hashlib
from datetime import datetime, timedelta, timezone

from hypothesis import given
from hypothesis import strategies as st

from winroom_kernel.domain.fingerprint import generate_fingerprint, hour_bucket

CREATED = datetime(2024, 6, 10, 14, 5, 30, tzinfo=timezone.utc)

aware_datetimes = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2100, 1, 1),
    timezones=st.just(timezone.utc),
)


class TestHourBucket:
    def test_format(self):
        assert hour_bucket(CREATED) == "2024-06-10T14"

    def test_naive_values_are_utc(self):
        assert hour_bucket(CREATED.replace(tzinfo=None)) == "2024-06-10T14"

    def test_other_offsets_normalized(self):
        istanbul = timezone(timedelta(hours=3))
        assert hour_bucket(CREATED.astimezone(istanbul)) == "2024-06-10T14"


class TestGenerateFingerprint:
    def test_pipe_joined_sha256(self):
        expected = hashlib.sha256(b"7|3|2024-06-10T14|sub_1|").hexdigest()
        assert generate_fingerprint(7, 3, CREATED, "sub_1", None) == expected

    def test_missing_fields_render_empty(self):
        expected = hashlib.sha256(b"||2024-06-10T14||").hexdigest()
        assert generate_fingerprint(None, None, CREATED) == expected

    def test_external_ids_distinguish(self):
        assert generate_fingerprint(7, 3, CREATED, "a") != generate_fingerprint(7, 3, CREATED, "b")
        assert generate_fingerprint(7, 3, CREATED, None, "p") != generate_fingerprint(7, 3, CREATED)

    @given(created=aware_datetimes, minutes=st.integers(min_value=0, max_value=59))
    def test_same_hour_same_fingerprint(self, created, minutes):
        start = created.replace(minute=0, second=0, microsecond=0)
        later = start + timedelta(minutes=minutes)
        assert generate_fingerprint(1, 2, start) == generate_fingerprint(1, 2, later)

    @given(created=aware_datetimes)
    def test_next_hour_differs(self, created):
        assert generate_fingerprint(1, 2, created) != generate_fingerprint(
            1, 2, created + timedelta(hours=1)
        )

    @given(user_a=st.integers(min_value=1), user_b=st.integers(min_value=1))
    def test_user_distinguishes(self, user_a, user_b):
        same = generate_fingerprint(user_a, 2, CREATED) == generate_fingerprint(user_b, 2, CREATED)
        assert same == (user_a == user_b)
