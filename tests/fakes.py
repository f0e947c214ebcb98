"""Test doubles: a scripted HTTP session and in-process connectors."""

import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import requests
from requests.structures import CaseInsensitiveDict

from cartshift.models.entities import EntityType, ImportResult


def make_response(status: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None,
                  url: str = "https://test.invalid/", text: Optional[str] = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    if text is not None:
        response._content = text.encode("utf-8")
    else:
        response._content = json.dumps(body).encode("utf-8") if body is not None else b""
    response.headers = CaseInsensitiveDict(headers or {})
    response.url = url
    response.reason = "OK" if status < 400 else "Error"
    response.encoding = "utf-8"
    return response


@dataclass
class Call:
    method: str
    path: str
    params: Dict[str, Any]
    json: Any
    auth: Any


Handler = Callable[[Dict[str, Any], Any], requests.Response]


class FakeSession:
    """Stands in for requests.Session; routes are keyed by (method, url path)."""

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Any]] = None):
        self.routes: Dict[Tuple[str, str], Any] = dict(routes or {})
        self.headers: Dict[str, str] = {}
        self.calls: List[Call] = []
        self.closed = False

    def request(self, method, url, params=None, json=None, auth=None, timeout=None):
        path = urlparse(url).path
        self.calls.append(Call(method, path, dict(params or {}), json, auth))
        handler = self.routes.get((method, path))
        if handler is None:
            response = make_response(404, {"message": f"No route for {method} {path}"}, url=url)
        elif callable(handler):
            response = handler(dict(params or {}), json)
        else:
            response = handler
        response.url = url
        return response

    def calls_to(self, method: str, path: str) -> List[Call]:
        return [call for call in self.calls if call.method == method and call.path == path]

    def close(self):
        self.closed = True


class FakeSource:
    """Duck-typed source connector serving canned records."""

    name = "Fake Source"

    def __init__(self, records=None, readable=None, connect_error=None, fail_with=None,
                 gate: Optional[threading.Event] = None, fields=None):
        self.records = records or {}
        self.fields = fields or {}
        self.readable = set(readable) if readable is not None else set(EntityType)
        self.connect_error = connect_error
        self.fail_with = fail_with
        self.gate = gate
        self.calls: List[EntityType] = []
        self.connected = False
        self.disconnects = 0

    def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def disconnect(self):
        self.connected = False
        self.disconnects += 1

    def supports_read(self, entity_type):
        return entity_type in self.readable

    def get_export_fields(self, entity_type):
        return list(self.fields.get(entity_type, []))

    def get_entities(self, entity_type, on_progress=None):
        self.calls.append(entity_type)
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail_with is not None:
            raise self.fail_with
        records = self.records.get(entity_type, [])
        if on_progress and records:
            on_progress(50)
            on_progress(100)
        return records


class FakeDestination:
    """Duck-typed destination connector that accepts every record except fail_ids."""

    name = "Fake Destination"

    def __init__(self, writable=None, fail_ids=(), fields=None):
        self.writable = set(writable) if writable is not None else set(EntityType)
        self.fields = fields or {}
        self.fail_ids = set(fail_ids)
        self.imported: Dict[EntityType, list] = {}
        self.connected = False
        self.disconnects = 0

    def connect(self):
        self.connected = True

    def disconnect(self):
        self.connected = False
        self.disconnects += 1

    def supports_write(self, entity_type):
        return entity_type in self.writable

    def get_import_fields(self, entity_type):
        return list(self.fields.get(entity_type, []))

    def import_entities(self, entity_type, records):
        self.imported.setdefault(entity_type, []).extend(records)
        results = []
        for record in records:
            if record.original_id in self.fail_ids:
                results.append(ImportResult(original_id=record.original_id, success=False, error="rejected"))
            else:
                results.append(ImportResult(original_id=record.original_id, success=True,
                                            new_id=f"new-{record.original_id}"))
        return results
