"""Microsoft Graph helper focused on folder binding and message moves."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterator
from urllib.parse import quote

import msal
import requests
from requests import Response

from .config import Settings
from .errors import AuthenticationError, FolderNotFoundError
from .models import FolderHandle, MailItem, Moved, MoveFailed, MoveResult, Throttled
from .utils import parse_graph_datetime

logger = logging.getLogger(__name__)


class GraphClient:
    """Authenticated Graph session used for one transfer run.

    Creating the client is the connect step; ``close`` (or leaving a ``with``
    block) disconnects. Mailbox addresses are passed on every call, the client
    keeps no notion of a current mailbox.
    """

    GRAPH_SCOPE = ["https://graph.microsoft.com/.default"]
    GRAPH_BASE = "https://graph.microsoft.com/v1.0"

    WELL_KNOWN_FOLDERS = {
        "archive",
        "clutter",
        "conflicts",
        "deleteditems",
        "drafts",
        "inbox",
        "junkemail",
        "outbox",
        "recoverableitemsdeletions",
        "scheduled",
        "sentitems",
    }
    # PR_MESSAGE_SIZE; Graph does not expose message size as a first-class property.
    MESSAGE_SIZE_PROPERTY = "Integer 0x0E08"
    THROTTLE_STATUSES = {429, 503}
    DEFAULT_RETRY_AFTER_SECONDS = 5
    TIMEOUT = 30

    def __init__(
        self,
        settings: Settings,
        session: requests.Session | None = None,
        token_provider: Callable[[], str] | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.scopes = settings.graph_scopes
        self.auth_mode = settings.graph_auth_mode
        self.authority = settings.authority_url
        self._token_provider = token_provider
        self._token_cache = None
        self.app = None

        if token_provider is not None:
            return
        if self.auth_mode == "client_credentials":
            self.app = msal.ConfidentialClientApplication(
                client_id=settings.graph_client_id,
                client_credential=settings.graph_client_secret,
                authority=self.authority,
            )
        else:
            token_cache = msal.SerializableTokenCache()
            cache_path = settings.graph_token_cache
            if cache_path.exists():
                token_cache.deserialize(cache_path.read_text())
            self._token_cache = token_cache
            self.app = msal.PublicClientApplication(
                client_id=settings.graph_client_id,
                authority=self.authority,
                token_cache=token_cache,
            )

    def __enter__(self) -> "GraphClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def acting_user(self) -> str:
        """Identity recorded in audit entries."""
        if self.settings.acting_user:
            return self.settings.acting_user
        if self.auth_mode == "device_code" and self.app is not None:
            accounts = self.app.get_accounts()
            if accounts:
                return accounts[0].get("username") or self.settings.graph_client_id
        return f"app:{self.settings.graph_client_id}"

    def bind(self, folder_name: str, mailbox: str) -> FolderHandle:
        """Resolve a well-known name or a slash separated display-name path."""
        segments = [segment for segment in folder_name.strip("/").split("/") if segment]
        if not segments:
            raise FolderNotFoundError(folder_name, mailbox, "empty folder name")

        root = self._mailbox_root(mailbox)
        first = segments[0]
        try:
            if first.replace(" ", "").lower() in self.WELL_KNOWN_FOLDERS:
                raw = self._get(
                    f"{root}/mailFolders/{first.replace(' ', '').lower()}",
                    params={"$select": "id,displayName"},
                ).json()
            else:
                raw = self._find_child(f"{root}/mailFolders", first)
            for segment in segments[1:]:
                if raw is None:
                    break
                raw = self._find_child(f"{root}/mailFolders/{raw['id']}/childFolders", segment)
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status in (403, 404):
                reason = "access denied" if status == 403 else "not found"
                raise FolderNotFoundError(folder_name, mailbox, reason) from exc
            raise

        if raw is None:
            raise FolderNotFoundError(folder_name, mailbox)
        logger.debug("Bound folder '%s' in %s to %s", folder_name, mailbox, raw["id"])
        return FolderHandle(folder_id=raw["id"], display_name=folder_name, mailbox=mailbox)

    def list_folders(self, mailbox: str) -> Iterator[tuple[str, FolderHandle]]:
        """Yield (path, handle) for every folder in the mailbox, depth first."""
        root = self._mailbox_root(mailbox)
        yield from self._walk_folders(f"{root}/mailFolders", mailbox, prefix="")

    def iter_items(self, folder: FolderHandle, search_filter: str | None = None) -> Iterator[MailItem]:
        """Yield every message in the folder, optionally narrowed by an OData filter."""
        url = f"{self._mailbox_root(folder.mailbox)}/mailFolders/{folder.folder_id}/messages"
        params = {
            "$select": "id,subject,from,receivedDateTime,parentFolderId",
            "$expand": f"singleValueExtendedProperties($filter=id eq '{self.MESSAGE_SIZE_PROPERTY}')",
            "$top": self.settings.graph_page_size,
        }
        if search_filter:
            params["$filter"] = search_filter

        while url:
            logger.debug("Fetching Graph messages page %s", url)
            payload = self._get(url, params=params).json()
            for raw in payload.get("value", []):
                yield self._to_item(raw, folder)
            url = payload.get("@odata.nextLink")
            params = None  # only pass params to the first call

    def move(self, item: MailItem, destination: FolderHandle) -> MoveResult:
        """Move one message; never raises for HTTP level failures."""
        url = f"{self._mailbox_root(item.mailbox)}/messages/{quote(item.item_id, safe='')}/move"
        try:
            resp = self._post(url, json={"destinationId": destination.folder_id})
        except (requests.RequestException, AuthenticationError) as exc:
            logger.error("Graph move request for %s failed: %s", item.item_id, exc)
            return MoveFailed(cause=str(exc))

        if resp.status_code in self.THROTTLE_STATUSES:
            backoff_ms = self._retry_after_ms(resp)
            logger.warning(
                "Graph throttled move of %s (%s); retry after %sms",
                item.item_id,
                resp.status_code,
                backoff_ms,
            )
            return Throttled(backoff_ms=backoff_ms)
        if resp.status_code >= 400:
            logger.error("Graph move failed (%s): %s", resp.status_code, resp.text)
            return MoveFailed(cause=self._error_message(resp), status_code=resp.status_code)

        payload = self._parse_json(resp)
        return Moved(new_item_id=payload.get("id") if isinstance(payload, dict) else None)

    def get_item_count(self, folder: FolderHandle) -> int:
        url = f"{self._mailbox_root(folder.mailbox)}/mailFolders/{folder.folder_id}"
        payload = self._get(url, params={"$select": "totalItemCount"}).json()
        return int(payload.get("totalItemCount", 0))

    def _walk_folders(self, url: str, mailbox: str, prefix: str) -> Iterator[tuple[str, FolderHandle]]:
        params = {"$select": "id,displayName,childFolderCount", "$top": self.settings.graph_page_size}
        children: list[tuple[str, str]] = []
        while url:
            payload = self._get(url, params=params).json()
            for raw in payload.get("value", []):
                path = f"{prefix}{raw['displayName']}"
                yield path, FolderHandle(folder_id=raw["id"], display_name=path, mailbox=mailbox)
                if raw.get("childFolderCount"):
                    children.append((path, raw["id"]))
            url = payload.get("@odata.nextLink")
            params = None

        root = self._mailbox_root(mailbox)
        for path, folder_id in children:
            yield from self._walk_folders(
                f"{root}/mailFolders/{folder_id}/childFolders", mailbox, prefix=f"{path}/"
            )

    def _find_child(self, url: str, display_name: str) -> dict | None:
        escaped = display_name.replace("'", "''")
        params = {"$filter": f"displayName eq '{escaped}'", "$select": "id,displayName"}
        matches = self._get(url, params=params).json().get("value", [])
        return matches[0] if matches else None

    def _get(self, url: str, params: dict | None = None) -> Response:
        headers = {"Authorization": f"Bearer {self._acquire_token()}"}
        resp = self.session.get(url, headers=headers, params=params, timeout=self.TIMEOUT)
        if resp.status_code >= 400:
            logger.error("Graph request failed (%s): %s", resp.status_code, resp.text)
            resp.raise_for_status()
        return resp

    def _post(self, url: str, json: dict) -> Response:
        headers = {
            "Authorization": f"Bearer {self._acquire_token()}",
            "Content-Type": "application/json",
        }
        return self.session.post(url, headers=headers, json=json, timeout=self.TIMEOUT)

    def _acquire_token(self) -> str:
        if self._token_provider is not None:
            return self._token_provider()
        if self.auth_mode == "client_credentials":
            return self._acquire_token_client_credentials()
        return self._acquire_token_device_flow()

    def _acquire_token_client_credentials(self) -> str:
        result = self.app.acquire_token_silent(self.GRAPH_SCOPE, account=None)
        if not result:
            result = self.app.acquire_token_for_client(scopes=self.GRAPH_SCOPE)
        if "access_token" not in result:
            raise AuthenticationError(f"Unable to obtain Graph token: {result.get('error_description')}")
        return result["access_token"]

    def _acquire_token_device_flow(self) -> str:
        accounts = self.app.get_accounts()
        result = None
        if accounts:
            result = self.app.acquire_token_silent(self.scopes, account=accounts[0])
        if not result:
            flow = self.app.initiate_device_flow(scopes=self.scopes)
            if "user_code" not in flow:
                raise AuthenticationError(f"Unable to start device code flow: {flow}")
            logger.info(flow.get("message"))
            result = self.app.acquire_token_by_device_flow(flow)
        if "access_token" not in result:
            raise AuthenticationError(f"Unable to obtain Graph token: {result.get('error_description')}")
        self._persist_token_cache()
        return result["access_token"]

    def _persist_token_cache(self) -> None:
        if not self._token_cache or not self._token_cache.has_state_changed:
            return
        cache_path: Path = self.settings.graph_token_cache
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cache_path.write_text(self._token_cache.serialize())

    def _mailbox_root(self, mailbox: str) -> str:
        return f"{self.GRAPH_BASE}/users/{quote(mailbox)}"

    def _retry_after_ms(self, resp: Response) -> int:
        raw = resp.headers.get("Retry-After")
        try:
            seconds = float(raw) if raw else self.DEFAULT_RETRY_AFTER_SECONDS
        except ValueError:
            seconds = self.DEFAULT_RETRY_AFTER_SECONDS
        return int(seconds * 1000)

    @classmethod
    def _error_message(cls, resp: Response) -> str:
        payload = cls._parse_json(resp)
        if isinstance(payload, dict):
            error = payload.get("error") or {}
            if error.get("message"):
                return f"{error.get('code', 'Error')}: {error['message']}"
        return resp.text or resp.reason or "unknown error"

    @staticmethod
    def _parse_json(resp: Response) -> dict | str:
        try:
            return resp.json()
        except ValueError:
            return resp.text

    @classmethod
    def _to_item(cls, raw: dict, folder: FolderHandle) -> MailItem:
        sender = (raw.get("from") or {}).get("emailAddress") or {}
        received = raw.get("receivedDateTime")
        return MailItem(
            item_id=raw["id"],
            size=cls._message_size(raw),
            sender=sender.get("address", ""),
            subject=raw.get("subject") or "",
            received=parse_graph_datetime(received) if received else None,
            parent_folder_id=raw.get("parentFolderId") or folder.folder_id,
            mailbox=folder.mailbox,
        )

    @classmethod
    def _message_size(cls, raw: dict) -> int:
        # Graph echoes the id back normalised, e.g. "Integer 0xe08".
        for prop in raw.get("singleValueExtendedProperties") or []:
            kind, _, tag = prop.get("id", "").partition(" ")
            if kind.lower() == "integer" and tag and int(tag, 16) == 0x0E08:
                return int(prop.get("value") or 0)
        return 0
