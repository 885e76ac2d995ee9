from __future__ import annotations

import datetime
import json
import sys
import tempfile
import unittest
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from roster_fakes import FakePostgrest, memory_cache  # noqa: E402

from auth import hash_password  # noqa: E402
from data_exchange import export_filename, export_roster_data  # noqa: E402
from errors import RosterValidationError  # noqa: E402
from events import EMPLOYEES_UPDATED, ORIGIN_LOCAL, ORIGIN_REMOTE, ROSTER_UPDATED, ChangeEvent  # noqa: E402
from local_cache import APP_CONFIG_KEY, roster_key  # noqa: E402
from roster import Shift  # noqa: E402
from roster_store import RosterStore  # noqa: E402
from session_state import SYNC_OFFLINE, SYNC_SYNCED, AppConfig, RosterSession  # noqa: E402

WEEK_START = datetime.date(2025, 8, 4)
MON, THU = "Mon 4-Aug", "Thu 7-Aug"


def make_config() -> AppConfig:
    return AppConfig(
        company_name="Acme Cafe",
        system_title="Acme Rosters",
        users={"manager": hash_password("s3cret")},
    )


class RosterSessionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.cache = memory_cache()
        self.store = RosterStore(self.cache)
        self.session = self._session()

    def _session(self, store=None) -> RosterSession:
        return RosterSession(
            store or self.store,
            config=make_config(),
            employees=["Alice", "Bob"],
            locations=["Kitchen", "Bar"],
            week_start=WEEK_START,
        )

    async def test_login_and_logout(self) -> None:
        self.assertFalse(self.session.login("manager", "wrong"))
        self.assertFalse(self.session.is_logged_in)
        self.assertTrue(self.session.login(" manager ", "s3cret"))
        self.assertEqual(self.session.current_user, "manager")
        self.session.logout()
        self.assertFalse(self.session.is_logged_in)
        self.assertEqual(self.session.current_user, "")

    async def test_week_start_is_normalized_to_monday(self) -> None:
        session = RosterSession(self.store, config=make_config(), week_start=datetime.date(2025, 8, 9))
        self.assertEqual(session.week_key, "Aug-4-2025")
        self.assertEqual(session.week_range, "4-Aug to 10-Aug")
        self.assertEqual(session.week_display, "Aug 4 - Aug 10, 2025")

    async def test_loading_an_unsaved_week_fills_every_cell(self) -> None:
        grid = await self.session.load_week()
        self.assertEqual(set(grid), {"Kitchen", "Bar"})
        self.assertEqual(len(grid["Bar"]), 7)
        self.assertEqual(self.session.sync_status, SYNC_OFFLINE)

    async def test_saved_shift_survives_a_new_session(self) -> None:
        await self.session.load_week()
        saved = await self.session.save_shift("Kitchen", THU, Shift(employee="Alice", scheduled_start="15:00", scheduled_end="19:30"))
        self.assertFalse(saved)

        other = self._session()
        grid = await other.load_week()
        self.assertEqual(grid["Kitchen"][THU][0]["employee"], "Alice")
        self.assertEqual(grid["Bar"][MON], [])

    async def test_editing_a_shift_replaces_it(self) -> None:
        await self.session.load_week()
        await self.session.save_shift("Kitchen", MON, {"employee": "Alice", "scheduledStart": "09:00", "scheduledEnd": "17:00"})
        await self.session.save_shift("Kitchen", MON, {"employee": "Alice", "scheduledStart": "10:00", "scheduledEnd": "17:00"})
        cell = self.session.current_grid["Kitchen"][MON]
        self.assertEqual(len(cell), 1)
        self.assertEqual(cell[0]["scheduledStart"], "10:00")

    async def test_invalid_shifts_are_rejected_before_saving(self) -> None:
        await self.session.load_week()
        with self.assertRaises(RosterValidationError):
            await self.session.save_shift(None, MON, Shift(employee="Alice"))
        with self.assertRaises(RosterValidationError):
            await self.session.save_shift("Kitchen", MON, Shift(employee=""))
        with self.assertRaises(RosterValidationError):
            await self.session.save_shift("Kitchen", "Mon 11-Aug", Shift(employee="Alice"))
        with self.assertRaises(RosterValidationError):
            await self.session.save_shift("Kitchen", MON, Shift(employee="Alice", actual_end="5pm"))
        self.assertIsNone(self.cache.get(roster_key("main", "Aug-4-2025")))

    async def test_shift_for_editing_prefills_defaults_and_existing_values(self) -> None:
        await self.session.load_week()
        fresh = self.session.shift_for_editing("Kitchen", MON, "Alice")
        self.assertEqual((fresh.employee, fresh.scheduled_start, fresh.scheduled_end), ("Alice", "09:00", "17:00"))

        await self.session.save_shift("Kitchen", MON, Shift(employee="Alice", scheduled_start="10:00", notes="till"))
        existing = self.session.shift_for_editing("Kitchen", MON, "Alice")
        self.assertEqual((existing.scheduled_start, existing.notes), ("10:00", "till"))
        with self.assertRaises(RosterValidationError):
            self.session.shift_for_editing("Patio", MON, "Alice")

    async def test_shift_saved_without_times_uses_default_schedule(self) -> None:
        await self.session.load_week()
        await self.session.save_shift("Kitchen", THU, {"employee": "Alice"})
        stored = self.session.current_grid["Kitchen"][THU][0]
        self.assertEqual((stored["scheduledStart"], stored["scheduledEnd"]), ("09:00", "17:00"))
        self.assertAlmostEqual(self.session.hours_for_shift("Kitchen", THU, "Alice").total, 7.5)

    async def test_delete_shift(self) -> None:
        await self.session.load_week()
        await self.session.save_shift("Bar", MON, Shift(employee="Bob"))
        await self.session.delete_shift("Bar", MON, "Bob")
        self.assertEqual(self.session.current_grid["Bar"][MON], [])
        self.assertFalse(await self.session.delete_shift("Bar", MON, "Nobody"))

    async def test_hours_for_shift_and_week_totals(self) -> None:
        await self.session.load_week()
        await self.session.save_shift("Kitchen", THU, Shift(employee="Alice", scheduled_start="15:00", scheduled_end="19:00"))
        await self.session.save_shift("Bar", MON, Shift(employee="Alice"))

        thursday = self.session.hours_for_shift("Kitchen", THU, "Alice")
        self.assertAlmostEqual(thursday.total, 4.0)
        self.assertAlmostEqual(thursday.overtime, 1.0)
        self.assertAlmostEqual(thursday.regular, 3.0)

        self.session.set_public_holiday(WEEK_START, "Holiday")
        monday = self.session.hours_for_shift("Bar", MON, "Alice")
        self.assertAlmostEqual(monday.public_holiday, 7.5)
        self.assertAlmostEqual(monday.regular, 0)

        totals = self.session.week_hours()
        self.assertEqual(list(totals), ["Alice", "Bob"])
        self.assertAlmostEqual(totals["Alice"].total, 11.5)
        self.assertEqual(totals["Bob"].total, 0)

        self.session.clear_public_holiday(WEEK_START)
        self.assertEqual(self.session.holiday_days(), [])
        self.assertEqual(self.session.hours_for_shift("Bar", THU, "Bob").total, 0)

    async def test_navigate_week_switches_key(self) -> None:
        await self.session.load_week()
        await self.session.navigate_week("next")
        self.assertEqual(self.session.week_key, "Aug-11-2025")
        self.assertIn("Aug-4-2025", self.session.all_roster_data)
        await self.session.navigate_week("prev")
        await self.session.navigate_week("prev")
        self.assertEqual(self.session.week_key, "Jul-28-2025")
        await self.session.go_to_week(datetime.date(2025, 8, 7))
        self.assertEqual(self.session.week_key, "Aug-4-2025")

    async def test_employee_add_rename_and_delete(self) -> None:
        await self.session.load_week()
        await self.session.save_shift("Bar", MON, Shift(employee="Bob"))

        await self.session.save_employee("  Carol ")
        self.assertEqual(self.session.employees, ["Alice", "Bob", "Carol"])
        await self.session.save_employee("Alice")
        self.assertEqual(self.session.employees, ["Alice", "Bob", "Carol"])

        await self.session.save_employee("Robert", previous="Bob")
        self.assertEqual(self.session.employees, ["Alice", "Robert", "Carol"])
        self.assertEqual(self.session.current_grid["Bar"][MON][0]["employee"], "Robert")

        with self.assertRaises(RosterValidationError):
            await self.session.save_employee("Alice", previous="Carol")
        with self.assertRaises(RosterValidationError):
            await self.session.save_employee("   ")

        await self.session.delete_employee("Carol")
        self.assertEqual(self.session.employees, ["Alice", "Robert"])
        self.assertEqual(await self.store.load_employees("main"), ["Alice", "Robert"])

    async def test_location_add_rename_and_delete(self) -> None:
        await self.session.load_week()
        await self.session.save_shift("Bar", MON, Shift(employee="Bob"))

        await self.session.save_location("Patio")
        self.assertEqual(self.session.current_grid["Patio"][MON], [])

        await self.session.save_location("Lounge", previous="Bar")
        self.assertEqual(self.session.locations, ["Kitchen", "Lounge", "Patio"])
        self.assertEqual(self.session.current_grid["Lounge"][MON][0]["employee"], "Bob")
        self.assertNotIn("Bar", self.session.current_grid)

        await self.session.delete_location("Lounge")
        self.assertEqual(self.session.locations, ["Kitchen", "Patio"])
        self.assertIn("Lounge", self.session.current_grid)
        self.assertEqual(await self.store.load_locations("main"), ["Kitchen", "Patio"])

    async def test_saved_config_and_lists_are_restored(self) -> None:
        await self.session.save_app_config(company_name="Harbour Bistro")
        await self.session.save_employee("Dana")
        await self.session.save_location("Patio")
        self.assertEqual(self.cache.get(APP_CONFIG_KEY)["companyName"], "Harbour Bistro")

        restored = RosterSession(self.store, config=make_config(), week_start=WEEK_START)
        await restored.load_saved_data()
        self.assertEqual(restored.config.company_name, "Harbour Bistro")
        self.assertEqual(restored.config.system_title, "Acme Rosters")
        self.assertEqual(restored.employees, ["Alice", "Bob", "Dana"])
        self.assertEqual(restored.locations, ["Kitchen", "Bar", "Patio"])
        self.assertTrue(restored.login("manager", "s3cret"))

    async def test_remote_roster_event_replaces_loaded_week(self) -> None:
        await self.session.load_week()
        incoming = {"Kitchen": {MON: [{"employee": "Bob", "scheduledStart": "06:00", "scheduledEnd": "14:00"}]}}
        self.store.notify(
            ChangeEvent(kind=ROSTER_UPDATED, location_id="main", week_key="Aug-4-2025", data=incoming, origin=ORIGIN_REMOTE)
        )
        grid = self.session.all_roster_data["Aug-4-2025"]
        self.assertEqual(grid["Kitchen"][MON], incoming["Kitchen"][MON])
        self.assertEqual(set(grid), {"Kitchen", "Bar"})
        for location in ("Kitchen", "Bar"):
            for day in self.session.days:
                self.assertIn(day, grid[location])
        self.assertIsNot(grid["Kitchen"], incoming["Kitchen"])

        self.store.notify(
            ChangeEvent(kind=EMPLOYEES_UPDATED, location_id="main", data=["Bob", "Zed", "Bob"], origin=ORIGIN_REMOTE)
        )
        self.assertEqual(self.session.employees, ["Bob", "Zed"])

    async def test_sparse_remote_grid_for_another_loaded_week_is_filled_in(self) -> None:
        await self.session.load_week()
        await self.session.navigate_week("next")
        self.store.notify(
            ChangeEvent(kind=ROSTER_UPDATED, location_id="main", week_key="Aug-4-2025", data={"Kitchen": {}}, origin=ORIGIN_REMOTE)
        )
        grid = self.session.all_roster_data["Aug-4-2025"]
        for location in ("Kitchen", "Bar"):
            self.assertEqual(list(grid[location]), [MON, "Tue 5-Aug", "Wed 6-Aug", THU, "Fri 8-Aug", "Sat 9-Aug", "Sun 10-Aug"])
        self.assertNotIn("Aug-18-2025", self.session.all_roster_data)

    async def test_local_and_foreign_events_leave_state_alone(self) -> None:
        await self.session.load_week()
        before = self.session.current_grid
        self.store.notify(ChangeEvent(kind=ROSTER_UPDATED, location_id="main", week_key="Aug-4-2025", data={}, origin=ORIGIN_LOCAL))
        self.store.notify(ChangeEvent(kind=ROSTER_UPDATED, location_id="north", week_key="Aug-4-2025", data={}, origin=ORIGIN_REMOTE))
        self.assertIs(self.session.current_grid, before)

    async def test_close_unsubscribes_from_store(self) -> None:
        await self.session.close()
        self.assertEqual(self.store._listeners, {})

    async def test_export_writes_named_json_file(self) -> None:
        await self.session.load_week()
        await self.session.save_shift("Kitchen", MON, Shift(employee="Alice"))
        self.session.set_public_holiday(WEEK_START, "Picnic Day")
        with tempfile.TemporaryDirectory() as directory:
            path = export_roster_data(self.session, Path(directory))
            self.assertEqual(path.name, "Acme-Cafe-roster-Aug-4-2025.json")
            payload = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(
            set(payload),
            {"employees", "locations", "allRosterData", "publicHolidays", "exportDate", "weekRange"},
        )
        self.assertEqual(payload["weekRange"], "4-Aug to 10-Aug")
        self.assertEqual(payload["publicHolidays"], {"2025-08-04": "Picnic Day"})
        self.assertEqual(payload["allRosterData"]["Aug-4-2025"]["Kitchen"][MON][0]["employee"], "Alice")

    def test_export_filename_collapses_whitespace(self) -> None:
        self.assertEqual(export_filename("The  Corner Store", "Aug-4-2025"), "The-Corner-Store-roster-Aug-4-2025.json")


class ConnectedSessionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.backend = FakePostgrest()
        self.store = RosterStore(memory_cache(), self.backend.client, enable_change_feed=False)
        self.session = RosterSession(
            self.store,
            config=make_config(),
            employees=["Alice"],
            locations=["Kitchen"],
            week_start=WEEK_START,
        )

    async def asyncTearDown(self) -> None:
        await self.session.close()

    async def test_connected_session_saves_remotely(self) -> None:
        self.assertTrue(await self.session.connect())
        self.assertEqual(self.session.sync_status, SYNC_SYNCED)
        await self.session.load_week()
        self.assertTrue(await self.session.save_shift("Kitchen", MON, Shift(employee="Alice")))
        self.assertEqual(self.session.sync_status, SYNC_SYNCED)
        row = self.backend.row("rosters", location_id="main", week_key="Aug-4-2025")
        self.assertEqual(row["data"]["Kitchen"][MON][0]["employee"], "Alice")

    async def test_failed_write_marks_session_offline(self) -> None:
        await self.session.connect()
        await self.session.load_week()
        self.backend.fail_writes = True
        self.assertFalse(await self.session.save_shift("Kitchen", MON, Shift(employee="Alice")))
        self.assertEqual(self.session.sync_status, SYNC_OFFLINE)

    async def test_unreachable_backend_connects_offline(self) -> None:
        self.backend.offline = True
        self.assertFalse(await self.session.connect())
        self.assertEqual(self.session.sync_status, SYNC_OFFLINE)


if __name__ == "__main__":
    unittest.main()
