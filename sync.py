"""
Optimistic synchronisation between HabitStore and the Habits API.

Every user mutation follows the same three steps:

1. apply the change to the store and count it as a pending operation;
2. send the request;
3. on success reconcile (for creates, swap the speculative id for the
   server id); on failure log, raise the error flag and replace local state
   with a full refetch from the server.

Nothing is retried automatically. Mutations on a habit whose create has not
been confirmed yet are applied locally at once and replayed against the
server id when it arrives; deleting such a habit cancels it, and the server
copy is removed as soon as its id is known.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Protocol, Sequence, Set

from days import DayLike, day_key
from store import Habit, HabitCompletion, HabitStore, SortOrderUpdate, new_pending

logger = logging.getLogger(__name__)

Replay = Callable[[str], Awaitable[None]]


class HabitsBackend(Protocol):
    async def fetch_habits(self) -> List[Habit]: ...

    async def create_habit(self, name: str, emoji: str, color: str) -> Habit: ...

    async def update_habit(self, habit_id: str, name: str, emoji: str, color: str) -> Habit: ...

    async def delete_habit(self, habit_id: str) -> dict: ...

    async def toggle_completion(self, habit_id: str, day: DayLike) -> HabitCompletion: ...

    async def update_habit_sort_order(self, updates: Sequence[SortOrderUpdate]) -> None: ...


class HabitSync:
    def __init__(self, store: HabitStore, api: HabitsBackend):
        self.store = store
        self.api = api
        self._deferred: Dict[str, List[Replay]] = {}
        self._background: Set[asyncio.Task] = set()
        self._cancelled: Set[str] = set()
        store.publish_sort_orders = self._publish_sort_orders

    async def load(self) -> None:
        """Restore the saved manual order, then fetch the authoritative list."""
        self.store.load_habit_order()
        self.store.set_loading(True)
        try:
            self.store.set_habits(await self.api.fetch_habits())
        except Exception as e:
            logger.error("Failed to load habits: %s", e)
            self.store.set_error(True)
        finally:
            self.store.set_loading(False)

    async def refetch(self) -> None:
        try:
            self.store.set_habits(await self.api.fetch_habits())
        except Exception as e:
            logger.error("Failed to refetch habits: %s", e)

    async def _failed(self, action: str, error: Exception) -> None:
        logger.error("Error %s: %s", action, error)
        self.store.set_error(True)
        await self.refetch()

    # Create / edit / delete --------------------------------------------

    async def add_habit(self, name: str, emoji: str, color: str) -> Habit:
        name = name.strip()
        temp = Habit(
            identity=new_pending(),
            name=name,
            emoji=emoji,
            color=color,
            sort_order=max((h.sort_order for h in self.store.habits), default=0) + 1,
        )
        self.store.add_habit(temp)
        self.store.start_operation()
        self._deferred[temp.id] = []
        try:
            created = await self.api.create_habit(name, emoji, color)
        except Exception as e:
            self._deferred.pop(temp.id, None)
            self._cancelled.discard(temp.id)
            await self._failed("creating habit", e)
            return temp
        finally:
            self.store.finish_operation()

        replays = self._deferred.pop(temp.id, [])
        if temp.id in self._cancelled:
            self._cancelled.discard(temp.id)
            logger.info("Habit %s was deleted before its create finished; removing %s", temp.id, created.id)
            await self._remote_delete(created.id)
            return created
        if not self.store.update_habit_id(temp.id, created.id):
            # a refetch replaced the list while the create was in flight
            logger.warning("Pending habit %s was dropped locally; keeping %s", temp.id, created.id)
            if self.store.find(created.id) is None:
                self.store.add_habit(created)
            return self.store.find(created.id) or created
        for replay in replays:
            await replay(created.id)
        return self.store.find(created.id) or created

    async def edit_habit(self, habit_id: str, name: str, emoji: str, color: str) -> None:
        name = name.strip()
        if not self.store.update_habit(habit_id, name=name, emoji=emoji, color=color):
            return

        async def send(server_id: str) -> None:
            self.store.start_operation()
            try:
                await self.api.update_habit(server_id, name, emoji, color)
            except Exception as e:
                await self._failed("updating habit", e)
            finally:
                self.store.finish_operation()

        await self._send_or_defer(habit_id, send)

    async def delete_habit(self, habit_id: str) -> None:
        habit = self.store.find(habit_id)
        self.store.delete_habit(habit_id)
        if habit is None:
            return
        if habit.is_pending:
            # removed remotely once the create returns its server id
            self._cancelled.add(habit_id)
            self._deferred.pop(habit_id, None)
            return
        await self._remote_delete(habit_id)

    async def _remote_delete(self, habit_id: str) -> None:
        self.store.start_operation()
        try:
            result = await self.api.delete_habit(habit_id)
            logger.info(result.get("message", f"Deleted habit {habit_id}"))
        except Exception as e:
            await self._failed("deleting habit", e)
        finally:
            self.store.finish_operation()

    # Completions -------------------------------------------------------

    async def toggle_completion(self, habit_id: str, day: DayLike) -> None:
        key = day_key(day)
        if self.store.toggle_completion(habit_id, key) is None:
            return

        async def send(server_id: str) -> None:
            self.store.start_operation()
            try:
                completion = await self.api.toggle_completion(server_id, key)
            except Exception as e:
                await self._failed("toggling completion", e)
            else:
                self.store.confirm_completion(server_id, key, completion.id)
            finally:
                self.store.finish_operation()

        await self._send_or_defer(habit_id, send)

    async def _send_or_defer(self, habit_id: str, send: Replay) -> None:
        if habit_id in self._deferred:
            self._deferred[habit_id].append(send)
        else:
            await send(habit_id)

    # Ordering ----------------------------------------------------------

    def reorder(self, from_index: int, to_index: int) -> List[SortOrderUpdate]:
        return self.store.reorder_habits(from_index, to_index)

    def _publish_sort_orders(self, updates: List[SortOrderUpdate]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            logger.error("Failed to update habit sort order: %s", e)
            self.store.set_error(True)
            return
        task = loop.create_task(self._send_sort_orders(updates))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_sort_orders(self, updates: List[SortOrderUpdate]) -> None:
        self.store.start_operation()
        try:
            await self.api.update_habit_sort_order(updates)
        except Exception as e:
            logger.error("Failed to update habit sort order: %s", e)
            self.store.set_error(True)
        finally:
            self.store.finish_operation()

    async def drain(self) -> None:
        """Wait for fire-and-forget requests still in flight."""
        while self._background:
            await asyncio.gather(*list(self._background))
