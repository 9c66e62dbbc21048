import asyncio
import copy
import unittest
from datetime import date
from typing import Dict, List, Optional, Set

from api_client import ApiError
from days import day_key
from store import Confirmed, Habit, HabitCompletion, HabitStore, Pending
from sync import HabitSync

TODAY = date(2026, 10, 19)


class FakeApi:
    """In-process stand-in for the HTTP API with switchable failures."""

    def __init__(self, habits: Optional[List[Habit]] = None):
        self.server: Dict[str, Habit] = {h.id: copy.deepcopy(h) for h in habits or []}
        self.fail: Set[str] = set()
        self.create_gate: Optional[asyncio.Event] = None
        self.calls: List[tuple] = []
        self._next = 0

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise ApiError(500, f"{name} failed")

    def _new_id(self, prefix: str) -> str:
        self._next += 1
        return f"{prefix}-{self._next}"

    async def fetch_habits(self) -> List[Habit]:
        self.calls.append(("fetch_habits",))
        self._maybe_fail("fetch_habits")
        return [copy.deepcopy(h) for h in self.server.values()]

    async def create_habit(self, name: str, emoji: str, color: str) -> Habit:
        self.calls.append(("create_habit", name))
        if self.create_gate is not None:
            await self.create_gate.wait()
        self._maybe_fail("create_habit")
        top = max((h.sort_order for h in self.server.values()), default=0)
        habit = Habit(Confirmed(self._new_id("srv")), name, emoji, color, top + 1)
        self.server[habit.id] = habit
        return copy.deepcopy(habit)

    async def update_habit(self, habit_id: str, name: str, emoji: str, color: str) -> Habit:
        self.calls.append(("update_habit", habit_id, name))
        self._maybe_fail("update_habit")
        habit = self.server[habit_id]
        habit.name, habit.emoji, habit.color = name, emoji, color
        return copy.deepcopy(habit)

    async def delete_habit(self, habit_id: str) -> dict:
        self.calls.append(("delete_habit", habit_id))
        self._maybe_fail("delete_habit")
        if habit_id not in self.server:
            raise ApiError(404, "Habit not found")
        habit = self.server.pop(habit_id)
        return {"success": True, "message": f'Habit "{habit.name}" deleted', "deletedCompletions": len(habit.completions)}

    async def toggle_completion(self, habit_id: str, day) -> HabitCompletion:
        self.calls.append(("toggle_completion", habit_id, day_key(day)))
        self._maybe_fail("toggle_completion")
        habit = self.server[habit_id]
        for completion in habit.completions:
            if completion.date == day_key(day):
                completion.completed = not completion.completed
                return copy.deepcopy(completion)
        completion = HabitCompletion(Confirmed(self._new_id("cmp")), habit_id, day_key(day), True)
        habit.completions.append(completion)
        return copy.deepcopy(completion)

    async def update_habit_sort_order(self, updates) -> None:
        self.calls.append(("update_habit_sort_order", list(updates)))
        self._maybe_fail("update_habit_sort_order")
        for habit_id, order in updates:
            self.server[habit_id].sort_order = order


def seed(*names: str) -> List[Habit]:
    return [
        Habit(Confirmed(name), name.title(), "💧", "#06b6d4", len(names) - i)
        for i, name in enumerate(names)
    ]


class SyncTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.api = FakeApi(seed("water", "read"))
        self.store = HabitStore()
        self.sync = HabitSync(self.store, self.api)
        await self.sync.load()

    def ids(self) -> List[str]:
        return [h.id for h in self.store.habits]


class TestLoad(SyncTestCase):
    async def test_load_populates_store(self) -> None:
        self.assertEqual(self.ids(), ["water", "read"])
        self.assertFalse(self.store.is_loading)
        self.assertFalse(self.store.has_error)

    async def test_load_failure_sets_error_flag(self) -> None:
        self.api.fail.add("fetch_habits")
        store = HabitStore()
        await HabitSync(store, self.api).load()
        self.assertTrue(store.has_error)
        self.assertFalse(store.is_loading)
        self.assertEqual(store.habits, [])


class TestCreate(SyncTestCase):
    async def test_speculative_habit_is_confirmed(self) -> None:
        self.api.create_gate = asyncio.Event()
        task = asyncio.create_task(self.sync.add_habit(" Stretch ", "🧘", "#8b5cf6"))
        await asyncio.sleep(0)

        pending = self.store.habits[-1]
        self.assertIsInstance(pending.identity, Pending)
        self.assertEqual(pending.name, "Stretch")
        self.assertEqual(self.store.pending_operations, 1)

        self.api.create_gate.set()
        created = await task

        self.assertEqual(created.identity, Confirmed("srv-1"))
        self.assertEqual(self.ids(), ["water", "read", "srv-1"])
        self.assertEqual(self.store.pending_operations, 0)

    async def test_failure_reverts_by_refetch(self) -> None:
        self.api.fail.add("create_habit")
        await self.sync.add_habit("Stretch", "🧘", "#8b5cf6")

        self.assertEqual(self.ids(), ["water", "read"])
        self.assertTrue(self.store.has_error)
        self.assertEqual(self.store.pending_operations, 0)
        self.assertEqual(self.api.calls[-1], ("fetch_habits",))

    async def test_delete_before_confirmation_removes_server_copy(self) -> None:
        self.api.create_gate = asyncio.Event()
        task = asyncio.create_task(self.sync.add_habit("Stretch", "🧘", "#8b5cf6"))
        await asyncio.sleep(0)
        temp_id = self.store.habits[-1].id

        await self.sync.delete_habit(temp_id)
        self.assertEqual(self.ids(), ["water", "read"])

        self.api.create_gate.set()
        await task

        self.assertEqual(self.ids(), ["water", "read"])
        self.assertNotIn("srv-1", self.api.server)
        self.assertIn(("delete_habit", "srv-1"), self.api.calls)
        self.assertEqual(self.store.pending_operations, 0)

    async def test_refetch_during_create_keeps_new_habit(self) -> None:
        self.api.create_gate = asyncio.Event()
        task = asyncio.create_task(self.sync.add_habit("Stretch", "🧘", "#8b5cf6"))
        await asyncio.sleep(0)

        self.api.fail.add("toggle_completion")
        await self.sync.toggle_completion("water", TODAY)
        self.assertEqual(self.ids(), ["water", "read"])

        self.api.create_gate.set()
        created = await task

        self.assertIn(created.id, self.api.server)
        self.assertNotIn(("delete_habit", created.id), self.api.calls)
        self.assertEqual(self.ids(), ["water", "read", created.id])
        self.assertEqual(self.store.pending_operations, 0)

    async def test_reload_during_create_keeps_new_habit(self) -> None:
        self.api.create_gate = asyncio.Event()
        task = asyncio.create_task(self.sync.add_habit("Stretch", "🧘", "#8b5cf6"))
        await asyncio.sleep(0)

        await self.sync.load()
        self.api.create_gate.set()
        created = await task

        self.assertIn(created.id, self.api.server)
        self.assertNotIn(("delete_habit", created.id), self.api.calls)
        self.assertIsNotNone(self.store.find(created.id))

        await self.sync.load()
        self.assertEqual(self.ids().count(created.id), 1)

    async def test_delete_after_refetch_still_removes_server_copy(self) -> None:
        self.api.create_gate = asyncio.Event()
        first = asyncio.create_task(self.sync.add_habit("Stretch", "🧘", "#8b5cf6"))
        await asyncio.sleep(0)
        temp_id = self.store.habits[-1].id

        await self.sync.delete_habit(temp_id)
        self.api.fail.add("toggle_completion")
        await self.sync.toggle_completion("water", TODAY)

        self.api.create_gate.set()
        created = await first

        self.assertNotIn(created.id, self.api.server)
        self.assertIn(("delete_habit", created.id), self.api.calls)
        self.assertEqual(self.ids(), ["water", "read"])

    async def test_toggle_on_pending_habit_is_replayed(self) -> None:
        self.api.create_gate = asyncio.Event()
        task = asyncio.create_task(self.sync.add_habit("Stretch", "🧘", "#8b5cf6"))
        await asyncio.sleep(0)
        temp_id = self.store.habits[-1].id

        await self.sync.toggle_completion(temp_id, TODAY)
        self.assertTrue(self.store.find(temp_id).completions[0].completed)
        self.assertFalse(any(call[0] == "toggle_completion" for call in self.api.calls))

        self.api.create_gate.set()
        await task

        local = self.store.find("srv-1").completions
        self.assertEqual(len(local), 1)
        self.assertTrue(local[0].completed)
        self.assertIsInstance(local[0].identity, Confirmed)
        self.assertEqual(local[0].id, self.api.server["srv-1"].completions[0].id)


class TestEditAndDelete(SyncTestCase):
    async def test_edit_is_applied_and_sent(self) -> None:
        await self.sync.edit_habit("read", "Read more", "📚", "#3b82f6")
        self.assertEqual(self.store.find("read").name, "Read more")
        self.assertEqual(self.api.server["read"].name, "Read more")

    async def test_edit_failure_refetches(self) -> None:
        self.api.fail.add("update_habit")
        await self.sync.edit_habit("read", "Read more", "📚", "#3b82f6")
        self.assertEqual(self.store.find("read").name, "Read")
        self.assertTrue(self.store.has_error)

    async def test_delete_is_optimistic(self) -> None:
        await self.sync.delete_habit("water")
        self.assertEqual(self.ids(), ["read"])
        self.assertNotIn("water", self.api.server)
        self.assertFalse(self.store.has_error)

    async def test_delete_failure_restores_habit(self) -> None:
        self.api.fail.add("delete_habit")
        await self.sync.delete_habit("water")
        self.assertEqual(self.ids(), ["water", "read"])
        self.assertTrue(self.store.has_error)
        self.assertEqual(self.store.pending_operations, 0)

    async def test_deleting_unknown_id_makes_no_request(self) -> None:
        await self.sync.delete_habit("ghost")
        self.assertNotIn(("delete_habit", "ghost"), self.api.calls)


class TestToggle(SyncTestCase):
    async def test_toggle_confirms_completion_id(self) -> None:
        await self.sync.toggle_completion("water", TODAY)
        completion = self.store.find("water").completions[0]
        self.assertTrue(completion.completed)
        self.assertEqual(completion.identity, Confirmed("cmp-1"))

    async def test_toggle_twice_matches_server(self) -> None:
        await self.sync.toggle_completion("water", TODAY)
        await self.sync.toggle_completion("water", TODAY)
        self.assertFalse(self.store.find("water").completions[0].completed)
        self.assertFalse(self.api.server["water"].completions[0].completed)
        self.assertEqual(len(self.store.find("water").completions), 1)

    async def test_toggle_failure_refetches(self) -> None:
        self.api.fail.add("toggle_completion")
        await self.sync.toggle_completion("water", TODAY)
        self.assertEqual(self.store.find("water").completions, [])
        self.assertTrue(self.store.has_error)
        self.assertEqual(self.store.pending_operations, 0)


class TestReorder(SyncTestCase):
    async def test_reorder_is_sent_in_background(self) -> None:
        self.sync.reorder(1, 0)
        self.assertEqual(self.ids(), ["read", "water"])

        await self.sync.drain()

        self.assertEqual(self.api.calls[-1], ("update_habit_sort_order", [("read", 2), ("water", 1)]))
        self.assertEqual(self.api.server["read"].sort_order, 2)
        self.assertEqual(self.store.pending_operations, 0)

    async def test_reorder_failure_only_flags_error(self) -> None:
        self.api.fail.add("update_habit_sort_order")
        self.sync.reorder(1, 0)
        await self.sync.drain()

        self.assertTrue(self.store.has_error)
        self.assertEqual(self.ids(), ["read", "water"])
        self.assertNotIn(("fetch_habits",), self.api.calls[1:])

    async def test_manual_order_survives_reload(self) -> None:
        self.sync.reorder(1, 0)
        await self.sync.drain()
        self.api.server["water"].sort_order = 10

        await self.sync.load()

        self.assertEqual(self.ids(), ["read", "water"])


class TestReorderWithoutLoop(unittest.TestCase):
    def test_reorder_outside_event_loop_flags_error(self) -> None:
        api = FakeApi(seed("water", "read"))
        store = HabitStore()
        sync = HabitSync(store, api)
        store.set_habits(seed("water", "read"))

        with self.assertLogs("sync", level="ERROR"):
            updates = sync.reorder(1, 0)

        self.assertEqual(updates, [("read", 2), ("water", 1)])
        self.assertEqual([h.id for h in store.habits], ["read", "water"])
        self.assertTrue(store.has_error)
        self.assertEqual(store.pending_operations, 0)
        self.assertEqual(api.calls, [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
