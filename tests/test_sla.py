"""SLA calculator tests: deadline table, classification boundaries, hours from deadline."""

from datetime import datetime, timedelta, timezone

import pytest

from osflow.models.workflow import PIPELINE, Stage
from osflow.services import sla

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestDeadlines:
    @pytest.mark.parametrize("stage", [s for s in PIPELINE if s not in (Stage.REVISAO, Stage.POSTADO)])
    def test_standard_stages_get_24h(self, stage):
        assert sla.deadline_for(stage) == timedelta(hours=24)

    def test_revisao_gets_48h(self):
        assert sla.deadline_for(Stage.REVISAO) == timedelta(hours=48)

    def test_postado_has_no_deadline(self):
        assert sla.deadline_for(Stage.POSTADO) is None
        assert sla.deadline_at(Stage.POSTADO, NOW) is None

    def test_deadline_at_adds_duration(self):
        assert sla.deadline_at(Stage.AUDIO, NOW) == NOW + timedelta(hours=24)

    def test_deadline_at_treats_naive_as_utc(self):
        naive = NOW.replace(tzinfo=None)
        assert sla.deadline_at(Stage.REVISAO, naive) == NOW + timedelta(hours=48)


@pytest.mark.unit
class TestClassify:
    def test_past_deadline_is_overdue(self):
        assert sla.classify(NOW - timedelta(seconds=1), NOW) is sla.SLAStatus.OVERDUE

    def test_deadline_equal_to_now_is_at_risk(self):
        assert sla.classify(NOW, NOW) is sla.SLAStatus.AT_RISK

    def test_within_four_hours_is_at_risk(self):
        assert sla.classify(NOW + timedelta(hours=3, minutes=59), NOW) is sla.SLAStatus.AT_RISK

    def test_exactly_four_hours_is_on_track(self):
        assert sla.classify(NOW + timedelta(hours=4), NOW) is sla.SLAStatus.ON_TRACK

    def test_no_deadline_is_on_track(self):
        assert sla.classify(None, NOW) is sla.SLAStatus.ON_TRACK

    def test_naive_deadline_from_sqlite(self):
        deadline = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert sla.classify(deadline, NOW) is sla.SLAStatus.OVERDUE


@pytest.mark.unit
@pytest.mark.parametrize("deadline_offset, hours", [
    (timedelta(hours=-3, minutes=-30), 3),
    (timedelta(minutes=-59), 0),
    (timedelta(days=-1, hours=-1), 25),
    (timedelta(hours=2), 2),
    (timedelta(hours=2, minutes=30), 3),
    (timedelta(minutes=10), 1),
])
def test_hours_from_deadline(deadline_offset, hours):
    assert sla.hours_from_deadline(NOW + deadline_offset, NOW) == hours


@pytest.mark.unit
def test_hours_from_naive_deadline():
    deadline = (NOW + timedelta(hours=2, minutes=30)).replace(tzinfo=None)
    assert sla.hours_from_deadline(deadline, NOW) == 3
