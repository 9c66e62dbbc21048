"""
Typed wrappers around the Habits HTTP API.

Each call returns domain objects from store.py, with completion dates parsed
into ``date`` values. Any non-2xx response raises ApiError carrying the
server's ``error`` message when there is one.
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx

from config import Settings, get_settings
from days import DayLike, day_key
from store import Confirmed, Habit, HabitCompletion, SortOrderUpdate


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


def parse_completion(raw: Dict[str, Any]) -> HabitCompletion:
    return HabitCompletion(
        identity=Confirmed(raw["id"]),
        habit_id=raw["habitId"],
        date=day_key(raw["date"]),
        completed=bool(raw["completed"]),
    )


def parse_habit(raw: Dict[str, Any]) -> Habit:
    return Habit(
        identity=Confirmed(raw["id"]),
        name=raw["name"],
        emoji=raw["emoji"],
        color=raw["color"],
        sort_order=int(raw["sortOrder"]),
        completions=[parse_completion(c) for c in raw.get("completions") or []],
    )


def make_client(user_id: Optional[str] = None, settings: Optional[Settings] = None) -> httpx.AsyncClient:
    """AsyncClient pointed at the configured API, carrying the caller identity if given."""
    settings = settings or get_settings()
    headers = {settings.auth_user_header: user_id} if user_id else {}
    return httpx.AsyncClient(base_url=settings.api_url, headers=headers, timeout=10.0)


class HabitsApi:
    """Client data-access layer; the caller owns the httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _request(self, method: str, url: str, fallback: str, **kwargs) -> Any:
        response = await self.client.request(method, url, **kwargs)
        if response.is_error:
            raise ApiError(response.status_code, self._error_message(response) or fallback)
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return body["error"]
        return None

    async def fetch_habits(self) -> List[Habit]:
        data = await self._request("GET", "/api/habits", "Failed to fetch habits")
        return [parse_habit(h) for h in data]

    async def create_habit(self, name: str, emoji: str, color: str) -> Habit:
        data = await self._request(
            "POST",
            "/api/habits",
            "Failed to create habit",
            json={"name": name, "emoji": emoji, "color": color},
        )
        return parse_habit(data)

    async def update_habit(self, habit_id: str, name: str, emoji: str, color: str) -> Habit:
        data = await self._request(
            "PUT",
            "/api/habits",
            "Failed to update habit",
            params={"id": habit_id},
            json={"name": name, "emoji": emoji, "color": color},
        )
        return parse_habit(data)

    async def delete_habit(self, habit_id: str) -> Dict[str, Any]:
        return await self._request(
            "DELETE", "/api/habits", "Failed to delete habit", params={"id": habit_id}
        )

    async def toggle_completion(self, habit_id: str, day: DayLike) -> HabitCompletion:
        data = await self._request(
            "POST",
            "/api/habits/toggle-completion",
            "Failed to toggle completion",
            json={"habitId": habit_id, "date": day_key(day).isoformat()},
        )
        return parse_completion(data)

    async def update_habit_sort_order(self, updates: Sequence[SortOrderUpdate]) -> None:
        await self._request(
            "PUT",
            "/api/habits/sort-order",
            "Failed to update habit sort order",
            json={"habits": [{"id": habit_id, "sortOrder": order} for habit_id, order in updates]},
        )
