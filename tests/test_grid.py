import unittest
from datetime import date, timedelta

from days import current_day
from grid import ERROR, SYNCED, SYNCING, build_grid, render_text, sync_status
from store import Confirmed, Habit, HabitCompletion, HabitStore, Pending

TODAY = date(2026, 10, 19)


def done(habit_id: str, *offsets: int):
    return [
        HabitCompletion(Confirmed(f"{habit_id}-{o}"), habit_id, TODAY - timedelta(days=o), True)
        for o in offsets
    ]


class TestGrid(unittest.TestCase):
    def setUp(self) -> None:
        self.habits = [
            Habit(Confirmed("water"), "Drink Water", "💧", "#06b6d4", 2, done("water", 0, 1, 2)),
            Habit(Pending("temp-1"), "Read", "📚", "#3b82f6", 1, done("temp-1", 3)),
        ]

    def test_rows_follow_store_order_with_newest_day_first(self) -> None:
        grid = build_grid(self.habits, TODAY)

        self.assertEqual(len(grid.days), 14)
        self.assertEqual(grid.days[0], TODAY)
        self.assertEqual([r.habit_id for r in grid.rows], ["water", "temp-1"])
        self.assertEqual(grid.rows[0].cells[:4], [True, True, True, False])
        self.assertEqual(grid.rows[1].cells[:4], [False, False, False, True])

    def test_streak_highlight_and_weekly_percentage(self) -> None:
        water, read = build_grid(self.habits, TODAY).rows
        self.assertEqual(water.streak, 3)
        self.assertTrue(water.has_streak)
        self.assertAlmostEqual(water.weekly_percentage, 300 / 7)
        self.assertEqual(read.streak, 0)
        self.assertFalse(read.has_streak)
        self.assertTrue(read.pending)

    def test_defaults_to_current_day(self) -> None:
        grid = build_grid(self.habits)
        self.assertEqual(grid.days[0], current_day())

    def test_render_text(self) -> None:
        text = render_text(build_grid(self.habits, TODAY), status=SYNCED)
        lines = text.splitlines()
        self.assertEqual(len(lines), 4)
        self.assertIn("🔥", lines[1])
        self.assertIn("Drink Water", lines[1])
        self.assertEqual(lines[-1], "[synced]")

    def test_render_empty(self) -> None:
        self.assertIn("No habits yet", render_text(build_grid([], TODAY)))


class TestSyncStatus(unittest.TestCase):
    def test_status_precedence(self) -> None:
        store = HabitStore()
        self.assertEqual(sync_status(store), SYNCED)
        store.start_operation()
        self.assertEqual(sync_status(store), SYNCING)
        store.set_error(True)
        self.assertEqual(sync_status(store), ERROR)
        store.set_error(False)
        store.finish_operation()
        store.set_loading(True)
        self.assertEqual(sync_status(store), SYNCING)


if __name__ == "__main__":
    unittest.main(verbosity=2)
