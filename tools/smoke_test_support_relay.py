#!/usr/bin/env python3
"""Smoke test: support chat relay + presence.

What it checks
- Can obtain a dev access token (server must run with enable_dev_token_endpoint=true).
- Unauthenticated /support connections are refused.
- A support message is echoed to the sender, then the canned reply arrives.
- user:online on the default namespace is broadcast to another client.

Usage:
  python tools/smoke_test_support_relay.py --base http://127.0.0.1:8082

Tip:
  Run the server first in another terminal.
"""

from __future__ import annotations

import argparse
import os
import random
import string
import threading
from dataclasses import dataclass, field

import requests
import socketio
from socketio.exceptions import ConnectionError as SioConnectionError


def _rand_suffix(n: int = 6) -> str:
    return "".join(random.choice(string.ascii_lowercase + string.digits) for _ in range(n))


def get_dev_token(base: str, user_id: str) -> str:
    r = requests.post(f"{base}/auth/api/dev-token", json={"userId": user_id}, timeout=10)
    if r.status_code == 404:
        raise RuntimeError("dev token endpoint disabled; set enable_dev_token_endpoint=true")
    r.raise_for_status()
    return r.json()["accessToken"]


@dataclass
class SioWrap:
    sio: socketio.Client
    received: list = field(default_factory=list)
    event: threading.Event = field(default_factory=threading.Event)


def make_support_client(base: str, token: str | None) -> SioWrap:
    w = SioWrap(sio=socketio.Client(logger=False, engineio_logger=False))

    @w.sio.on("receive_message", namespace="/support")
    def _on_message(data):
        w.received.append(data)
        w.event.set()

    w.sio.connect(
        base,
        namespaces=["/support"],
        auth={"token": token} if token else None,
        transports=["websocket"],
        wait_timeout=10,
    )
    return w


def make_default_client(base: str) -> SioWrap:
    w = SioWrap(sio=socketio.Client(logger=False, engineio_logger=False))

    @w.sio.on("user:status")
    def _on_status(data):
        w.received.append(data)
        w.event.set()

    w.sio.connect(base, transports=["websocket"], wait_timeout=10)
    return w


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--base", default=os.environ.get("MARKETMATCH_BASE", "http://127.0.0.1:8082"))
    ap.add_argument("--user", default=f"smoke_{_rand_suffix()}")
    ap.add_argument("--order", default=f"order_{_rand_suffix()}")
    args = ap.parse_args()

    base = args.base.rstrip("/")

    # 1) Unauthenticated support connection must be refused
    try:
        bad = make_support_client(base, None)
    except SioConnectionError:
        print("✅ Unauthenticated support connection refused")
    else:
        bad.sio.disconnect()
        print("❌ Unauthenticated support connection was accepted")
        return 2

    # 2) Support echo + auto-reply
    token = get_dev_token(base, args.user)
    A = make_support_client(base, token)
    try:
        res = A.sio.call("join_room", args.order, namespace="/support", timeout=10)
        if not (isinstance(res, dict) and res.get("success")):
            print(f"❌ join_room ack failed: {res}")
            return 3

        A.sio.emit("send_message", {"orderId": args.order, "text": "Hi", "id": "smoke-1"}, namespace="/support")
        if not A.event.wait(10) or A.received[0].get("id") != "smoke-1":
            print(f"❌ Echo not received: {A.received}")
            return 4
        print("✅ Support echo OK")

        A.event.clear()
        if len(A.received) < 2:
            A.event.wait(10)
        if len(A.received) < 2 or A.received[-1].get("sender") != "support":
            print(f"❌ Auto-reply not received: {A.received}")
            return 5
        print("✅ Support auto-reply OK")
    finally:
        try:
            A.sio.disconnect()
        except Exception:
            pass

    # 3) Presence broadcast
    watcher = make_default_client(base)
    announcer = make_default_client(base)
    try:
        announcer.sio.emit("user:online", args.user)
        if not watcher.event.wait(10):
            print("❌ user:status not received")
            return 6
        print("✅ Presence broadcast OK")
    finally:
        for w in (watcher, announcer):
            try:
                w.sio.disconnect()
            except Exception:
                pass

    print("\n🎉 Smoke test PASSED")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
