"""
supabase_rest.py - HTTP-based database client using Supabase's PostgREST API.
Uses only httpx; one instance per configured project, no module globals.
"""
import httpx
from urllib.parse import quote


class PostgrestError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"PostgREST {status_code}: {message}")


class SupabaseRest:
    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _raise_for_status(resp: httpx.Response):
        if resp.status_code >= 400:
            raise PostgrestError(resp.status_code, resp.text)

    async def select(
        self,
        table: str,
        filters: dict = None,
        columns: str = "*",
        query_string: str = None,
        order: str = None,
    ) -> list:
        """Select rows from a table with optional equality filters or raw query."""
        url = f"{self.url}/rest/v1/{table}?select={columns}"
        if filters:
            for key, value in filters.items():
                url += f"&{key}=eq.{quote(str(value))}"
        if query_string:
            url += f"&{query_string}"
        if order:
            url += f"&order={order}"

        async with self._client() as client:
            resp = await client.get(url, headers=self._headers())
            self._raise_for_status(resp)
            return resp.json()

    async def insert(self, table: str, data: dict) -> dict:
        """Insert a row and return the created record."""
        url = f"{self.url}/rest/v1/{table}"
        async with self._client() as client:
            resp = await client.post(url, json=data, headers=self._headers())
            self._raise_for_status(resp)
            result = resp.json()
            return result[0] if isinstance(result, list) and result else {}

    async def update(self, table: str, filters: dict, data: dict) -> list:
        """Update rows matching every equality filter; returns the updated rows."""
        url = f"{self.url}/rest/v1/{table}?" + "&".join(
            f"{key}=eq.{quote(str(value))}" for key, value in filters.items()
        )
        async with self._client() as client:
            resp = await client.patch(url, json=data, headers=self._headers())
            self._raise_for_status(resp)
            result = resp.json()
            return result if isinstance(result, list) else []
