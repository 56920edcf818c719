"""
Tests for schedule model validation.
"""

import pytest
from pydantic import ValidationError

from models.schedule_models import Schedule


@pytest.mark.unit
class TestSchedule:

    def test_store_names_accepted(self):
        schedule = Schedule.model_validate({
            "name": "nightly",
            "cronExpression": "0 4 * * *",
            "excludedImages": ["postgres:16"],
            "updateType": "checkOnly",
            "restartContainers": True,
        })

        assert schedule.cron_expression == "0 4 * * *"
        assert schedule.excluded_images == ["postgres:16"]
        assert schedule.check_only is True
        assert schedule.restart_containers is True
        assert schedule.enabled is True

    def test_field_names_accepted(self):
        schedule = Schedule(name="n", cron_expression=" */5 * * * * ", mode="minor")

        assert schedule.cron_expression == "*/5 * * * *"
        assert schedule.check_only is False

    @pytest.mark.parametrize("cron", ["", "* * * *", "* * * * * *", "61 * * * *", "a b c d e"])
    def test_invalid_cron(self, cron):
        with pytest.raises(ValidationError):
            Schedule(name="n", cron_expression=cron)

    def test_invalid_mode(self):
        with pytest.raises(ValidationError):
            Schedule(name="n", cron_expression="0 4 * * *", mode="major")

    def test_name_sanitized(self):
        assert Schedule(name=' <b>"nightly"</b> ', cron_expression="0 4 * * *").name == "bnightly/b"

    def test_to_store_round_trips(self):
        schedule = Schedule(id="schedule_1", name="n", cron_expression="0 4 * * *")

        assert Schedule.model_validate(schedule.to_store()) == schedule
