"""Pytest configuration and shared fakes for pipeline tests."""
import asyncio
import io
import json
import re
from types import SimpleNamespace
from typing import Optional

import httpx
import pytest
from botocore.exceptions import ClientError
from pymongo.errors import DuplicateKeyError

from pipeline_core.config import PipelineConfig
from pipeline_core.shared_services.build_marker import stamp_build_marker
from pipeline_core.tenant_management.db_service import InMemoryTenantRecordRepository
from pipeline_core.tenant_management.models import RecordStage, TenantRecord

CF_HOST = "api.cloudflare.com"
VERCEL_HOST = "api.vercel.com"
TELEGRAM_HOST = "api.telegram.org"
ZONE_ID = "zone-1"
PROJECT_ID = "prj_1"
TARGET = "cname.vercel-dns.com"

PAGE = "<!doctype html><html><head><title>{slug}</title></head><body>{slug}</body></html>"


# --- Settings ---

def make_settings(**overrides) -> PipelineConfig:
    values = dict(
        _env_file=None,
        environment="local",
        root_domain="example.com",
        cloudflare_api_token="cf-token",
        cloudflare_zone_id=ZONE_ID,
        vercel_token="vercel-token",
        vercel_project_id=PROJECT_ID,
        telegram_bot_token="bot-token",
        telegram_chat_id="42",
        http_max_attempts=2,
        http_retry_wait_seconds=0,
        http_retry_max_wait_seconds=0,
        http_retry_jitter_seconds=0,
        probe_delay_seconds=0,
        domain_poll_interval_seconds=0,
        promotion_timeout_seconds=0,
    )
    values.update(overrides)
    return PipelineConfig(**values)


@pytest.fixture
def settings() -> PipelineConfig:
    return make_settings()


def tenant_page(slug: str, settings: PipelineConfig, marker_slug: Optional[str] = None) -> str:
    """Built tenant HTML carrying the build marker for ``marker_slug`` (default: ``slug``)."""
    return stamp_build_marker(PAGE.format(slug=slug), marker_slug or slug, settings)


# --- Provider fakes ---

class FakeProviders:
    """
    In-process stand-in for the DNS API, the hosting API, the chat API and
    tenant hosts, served through ``httpx.MockTransport``.
    """

    def __init__(self):
        self.dns_records: dict[str, dict] = {}
        self.attached: set[str] = set()
        self.misconfigured: dict[str, bool] = {}
        self.sites: dict[str, dict] = {}
        self.head_status: dict[str, int] = {}
        self.messages: list[str] = []
        self.mutations: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self.failures: list[dict] = []
        self._next_id = 1

    # Setup helpers

    def add_dns_record(self, name: str, type_: str = "CNAME", content: str = TARGET, proxied: bool = False) -> str:
        record_id = f"rec-{self._next_id}"
        self._next_id += 1
        self.dns_records[record_id] = {
            "id": record_id, "type": type_, "name": name, "content": content, "ttl": 1, "proxied": proxied,
        }
        return record_id

    def serve(self, host: str, slug: str, html: str, status: int = 200) -> None:
        self.sites[host] = {"slug": slug, "html": html, "status": status}

    def records_at(self, name: str) -> list[dict]:
        return [r for r in self.dns_records.values() if r["name"] == name]

    def fail_on(self, fragment: str, status: int, times: Optional[int] = None) -> None:
        """Answer requests whose URL or body contains ``fragment`` with ``status``."""
        self.failures.append({"fragment": fragment, "status": status, "times": times})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    # Dispatch

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        text = f"{request.method} {request.url} {request.content.decode(errors='ignore')}"
        for failure in self.failures:
            if failure["fragment"] in text and failure["times"] != 0:
                if failure["times"] is not None:
                    failure["times"] -= 1
                return httpx.Response(
                    failure["status"], json={"success": False, "errors": [{"code": 10000, "message": "boom"}]}
                )

        host = request.url.host
        if host == CF_HOST:
            return self._cloudflare(request)
        if host == VERCEL_HOST:
            return self._vercel(request)
        if host == TELEGRAM_HOST:
            self.messages.append(json.loads(request.content)["text"])
            return httpx.Response(200, json={"ok": True})
        return self._site(request)

    def _cf_ok(self, result) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "errors": [], "result": result})

    def _cloudflare(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        base = f"/client/v4/zones/{ZONE_ID}/dns_records"
        if request.method == "GET" and path == base:
            name = request.url.params.get("name")
            type_ = request.url.params.get("type")
            found = [r for r in self.records_at(name) if not type_ or r["type"] == type_]
            return self._cf_ok(found)

        self.mutations.append((request.method, path))
        if request.method == "POST" and path == base:
            body = json.loads(request.content)
            if self.records_at(body["name"]):
                return httpx.Response(
                    400,
                    json={
                        "success": False,
                        "errors": [{"code": 81053, "message": "An A, AAAA, or CNAME record with that host already exists."}],
                    },
                )
            record_id = self.add_dns_record(body["name"], body["type"], body["content"], body["proxied"])
            return self._cf_ok(self.dns_records[record_id])

        match = re.fullmatch(rf"{base}/([^/]+)", path)
        if match and match.group(1) in self.dns_records:
            record_id = match.group(1)
            if request.method == "PUT":
                self.dns_records[record_id].update(json.loads(request.content))
                return self._cf_ok(self.dns_records[record_id])
            if request.method == "DELETE":
                del self.dns_records[record_id]
                return self._cf_ok({"id": record_id})
        return httpx.Response(404, json={"success": False, "errors": [{"code": 81044, "message": "Record not found"}]})

    def _vercel(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path == f"/v10/projects/{PROJECT_ID}/domains":
            self.mutations.append((request.method, path))
            name = json.loads(request.content)["name"]
            if name in self.attached:
                return httpx.Response(
                    409,
                    json={"error": {"code": "domain_already_in_use", "message": "Domain already in use"}},
                )
            self.attached.add(name)
            return httpx.Response(200, json={"name": name, "verified": True})

        match = re.fullmatch(rf"/v9/projects/{PROJECT_ID}/domains/([^/]+)", path)
        if match:
            name = match.group(1)
            if request.method == "GET":
                if name in self.attached:
                    return httpx.Response(200, json={"name": name})
                return httpx.Response(404, json={"error": {"code": "not_found"}})
            if request.method == "DELETE":
                self.mutations.append((request.method, path))
                if name not in self.attached:
                    return httpx.Response(404, json={"error": {"code": "not_found"}})
                self.attached.discard(name)
                return httpx.Response(200, json={})

        match = re.fullmatch(r"/v6/domains/([^/]+)/config", path)
        if match and request.method == "GET":
            return httpx.Response(200, json={"misconfigured": self.misconfigured.get(match.group(1), False)})
        return httpx.Response(404, json={"error": {"code": "not_found"}})

    def _site(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        site = self.sites.get(host)
        if request.method == "HEAD":
            if host in self.head_status:
                return httpx.Response(self.head_status[host])
            return httpx.Response(200 if site else 404)
        if request.url.path == "/api/sitehtml":
            if site is None:
                return httpx.Response(404, json={"ok": False, "kind": "tenant", "error": "site_source_not_found"})
            body = {"ok": True, "kind": "tenant", "slug": site["slug"], "html": site["html"]}
            return httpx.Response(site["status"], json=body)
        return httpx.Response(404)


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


# --- Object storage fake ---

class FakeS3Client:
    """Dict-backed subset of the boto3 S3 client."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.puts: list[str] = []

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.objects[Key] = Body if isinstance(Body, bytes) else Body.encode("utf-8")
        self.puts.append(Key)
        return {}

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {}


@pytest.fixture
def s3() -> FakeS3Client:
    return FakeS3Client()


# --- Content agent fake ---

class FakeContentAgent:
    model = "fake-model"

    def __init__(self, outputs=None, error: Optional[Exception] = None):
        self.outputs = list(outputs or [])
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.outputs.pop(0) if self.outputs else ""


# --- Records ---

def make_record(record_id: str, stage: RecordStage = RecordStage.NEW, **fields) -> TenantRecord:
    fields.setdefault("business_name", "Acme Bakery")
    fields.setdefault("contact_name", "Jane Doe")
    fields.setdefault("contact_email", "jane@acme.example")
    return TenantRecord(id=record_id, stage=stage, **fields)


@pytest.fixture
def repository() -> InMemoryTenantRecordRepository:
    return InMemoryTenantRecordRepository()


class _FakeCursor:
    def __init__(self, docs: list[dict]):
        self.docs = docs

    def sort(self, key: str, direction: int = 1) -> "_FakeCursor":
        self.docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self.docs:
            yield doc


class FakeMongoCollection:
    """
    The motor collection calls the record store makes, over a list of dicts.

    Fields in ``unique`` are enforced like unique indexes. ``find_one`` yields
    to the event loop after reading, so concurrent writers can interleave
    between their read and their insert.
    """

    def __init__(self, unique: tuple[str, ...] = ("id", "row")):
        self.docs: list[dict] = []
        self.unique = unique
        self.indexes = []

    @classmethod
    def _matches(cls, doc: dict, query: dict) -> bool:
        for key, cond in query.items():
            if key == "$or":
                if not any(cls._matches(doc, q) for q in cond):
                    return False
                continue
            value = doc.get(key)
            if isinstance(cond, dict):
                if "$in" in cond and value not in cond["$in"]:
                    return False
                if "$lte" in cond and (value is None or value > cond["$lte"]):
                    return False
            elif value != cond:
                return False
        return True

    def _select(self, query: dict) -> list[dict]:
        return [d for d in self.docs if self._matches(d, query)]

    async def create_indexes(self, indexes):
        self.indexes.extend(indexes)

    def find(self, query: dict) -> _FakeCursor:
        return _FakeCursor([dict(d) for d in self._select(query)])

    async def find_one(self, query: dict, sort=None, projection=None) -> Optional[dict]:
        found = self._select(query)
        for key, direction in reversed(sort or []):
            found.sort(key=lambda d: d.get(key), reverse=direction < 0)
        result = dict(found[0]) if found else None
        await asyncio.sleep(0)
        return result

    async def insert_one(self, doc: dict):
        for key in self.unique:
            if any(d.get(key) == doc.get(key) for d in self.docs):
                raise DuplicateKeyError(f"E11000 duplicate key error index: {key}_1", code=11000)
        doc["_id"] = len(self.docs) + 1
        self.docs.append(dict(doc))

    async def update_one(self, query: dict, update: dict) -> SimpleNamespace:
        found = self._select(query)
        if found:
            found[0].update(update["$set"])
        return SimpleNamespace(matched_count=len(found[:1]))

    async def find_one_and_update(self, query: dict, update: dict, return_document=None) -> Optional[dict]:
        found = self._select(query)
        if not found:
            return None
        found[0].update(update["$set"])
        return dict(found[0])


@pytest.fixture
def mongo_collection() -> FakeMongoCollection:
    return FakeMongoCollection()
