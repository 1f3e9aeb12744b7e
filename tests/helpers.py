import json
from datetime import datetime, timedelta, timezone

import httpx


def awattar_payload(start: datetime, costs: list[float]) -> dict:
    """Build a marketdata body with one hourly entry per cost, starting at ``start``."""
    data = []
    for i, cost in enumerate(costs):
        slot_start = start + timedelta(hours=i)
        data.append(
            {
                "start_timestamp": int(slot_start.timestamp() * 1000),
                "end_timestamp": int((slot_start + timedelta(hours=1)).timestamp() * 1000),
                "marketprice": cost,
                "unit": "Eur/MWh",
            }
        )
    return {"object": "list", "data": data, "url": "/at/v1/marketdata"}


class FakeShelly:
    """Answers Shelly RPC, aWATTar and Telegram requests for an httpx.MockTransport."""

    def __init__(self, jobs=None, costs=None, switch_error=None, awattar_status=200):
        self.jobs = {j["id"]: j for j in (jobs or [])}
        self.kvs: dict = {}
        self.rpc_calls: list[str] = []
        self.switch_calls: list[bool] = []
        self.telegrams: list[dict] = []
        self.awattar_requests: list[httpx.Request] = []
        self.costs = costs if costs is not None else [5, 5, 5, 2, 2, 2, 2, 9, 9, 9]
        self.switch_error = switch_error
        self.awattar_status = awattar_status
        self._next_id = max(self.jobs, default=0) + 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def mutating_calls(self) -> list[str]:
        return [m for m in self.rpc_calls if m in ("Schedule.Create", "Schedule.Update")]

    def handle(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host.startswith("api.awattar."):
            self.awattar_requests.append(request)
            if self.awattar_status != 200:
                return httpx.Response(self.awattar_status, json={"error": "unavailable"})
            start_ms = int(request.url.params["start"])
            start = datetime.fromtimestamp(start_ms / 1000, tz=timezone.utc)
            return httpx.Response(200, json=awattar_payload(start, self.costs))
        if host == "api.telegram.org":
            self.telegrams.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})
        body = json.loads(request.content)
        method, params = body["method"], body.get("params", {})
        self.rpc_calls.append(method)
        try:
            result = self._dispatch(method, params)
        except LookupError as exc:
            code, message = exc.args
            return httpx.Response(200, json={"id": body["id"], "error": {"code": code, "message": message}})
        return httpx.Response(200, json={"id": body["id"], "src": "shellyplusplugs", "result": result})

    def _dispatch(self, method: str, params: dict):
        if method == "Schedule.List":
            return {"jobs": list(self.jobs.values()), "rev": 1}
        if method == "Schedule.Create":
            job_id = self._next_id
            self._next_id += 1
            self.jobs[job_id] = {"id": job_id, **params}
            return {"id": job_id, "rev": 2}
        if method == "Schedule.Update":
            self.jobs[params["id"]].update(params)
            return {"rev": 3}
        if method == "KVS.Get":
            if params["key"] not in self.kvs:
                raise LookupError(-105, f"Argument 'key', value '{params['key']}' not found!")
            return {"etag": "x", "value": self.kvs[params["key"]]}
        if method == "KVS.Set":
            value = params["value"]
            if len(params["key"].encode()) > 42:
                raise LookupError(-103, "Invalid argument 'key': too long")
            if isinstance(value, str) and len(value.encode()) > 253:
                raise LookupError(-103, "Invalid argument 'value': too long")
            self.kvs[params["key"]] = value
            return {"etag": "y", "rev": 4}
        if method == "Switch.Set":
            self.switch_calls.append(params["on"])
            if self.switch_error is not None:
                raise LookupError(*self.switch_error)
            return {"was_on": not params["on"]}
        raise LookupError(-114, f"Method {method} failed: not found")
