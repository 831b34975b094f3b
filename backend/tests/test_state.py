from __future__ import annotations

from pomo.models import UserSetting
from pomo.state import DEFAULT_USER_SETTINGS, RuntimeState
from pomo.timer import IntervalType


def test_seed_defaults_inserts_every_setting(session) -> None:
    RuntimeState().seed_defaults(session)
    rows = {row.key: row for row in session.query(UserSetting).all()}

    assert set(rows) == set(DEFAULT_USER_SETTINGS)
    assert rows["work_duration_minutes"].value == "25"
    assert rows["break_overtime_enabled"].value == "false"
    assert rows["break_overtime_enabled"].type == "boolean"


def test_seed_defaults_keeps_existing_values(session) -> None:
    session.add(UserSetting(key="long_break_frequency", value="3", type="integer"))
    session.commit()

    state = RuntimeState()
    state.seed_defaults(session)
    state.load_from_db(session)

    assert state.long_break_frequency == 3
    assert session.get(UserSetting, "long_break_frequency").value == "3"


def test_load_skips_unknown_and_malformed_rows(session) -> None:
    session.add_all(
        [
            UserSetting(key="work_duration_minutes", value="fifty", type="integer"),
            UserSetting(key="theme", value="dark", type="string"),
            UserSetting(key="break_overtime_enabled", value="yes", type="boolean"),
        ]
    )
    session.commit()

    state = RuntimeState()
    state.load_from_db(session)

    assert state.work_duration_minutes == 25
    assert state.break_overtime_enabled is True
    assert state.get_overtime_enabled() is True


def test_apply_clamps_and_parses() -> None:
    state = RuntimeState()
    state.apply({"short_break_duration_minutes": 0, "break_overtime_enabled": "on", "unknown": 5})
    assert state.short_break_duration_minutes == 1
    assert state.break_overtime_enabled is True
    assert "unknown" not in state.snapshot()


def test_duration_seconds_for_each_type() -> None:
    state = RuntimeState()
    assert state.duration_seconds_for(IntervalType.WORK) == 1500
    assert state.duration_seconds_for("short_break") == 300
    assert state.duration_seconds_for(IntervalType.LONG_BREAK) == 900


def test_persist_round_trips_through_database(session) -> None:
    state = RuntimeState()
    state.seed_defaults(session)
    state.persist(session, {"work_duration_minutes": 50, "break_overtime_enabled": True})

    reloaded = RuntimeState()
    reloaded.load_from_db(session)
    assert reloaded.work_duration_minutes == 50
    assert reloaded.break_overtime_enabled is True
    assert reloaded.short_break_duration_minutes == 5
