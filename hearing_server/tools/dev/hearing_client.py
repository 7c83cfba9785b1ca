#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Hearing Server — Dev Console Client (/sessions)
-----------------------------------------------
Interactive console tool for running a hearing session against the server.

Features:
- Simple REPL: the server asks, you answer.
- Creates a session (POST /sessions), then posts every line you type to
  POST /sessions/{id}/answers and prints acknowledgement + next question.
- /end forces completion and prints the summary, /slots shows what has
  been collected so far, /quit leaves without ending.
- RETRY when the server is unreachable (with backoff). An answer that was
  sent but not answered is resent after the server comes back; the server
  ignores the duplicate if it had already accepted it.

This client is meant for development / testing on your laptop.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from typing import Any, Dict, Optional

import requests

DEFAULT_SERVER = "http://127.0.0.1:8000"


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Hearing Server — Dev Console Client (/sessions)",
    )
    parser.add_argument(
        "--server",
        type=str,
        default=DEFAULT_SERVER,
        help=f"Server base URL (default: {DEFAULT_SERVER})",
    )
    parser.add_argument(
        "--owner",
        type=str,
        default="dev-console",
        help="owner_id for the new session (default: dev-console).",
    )
    parser.add_argument(
        "--session",
        type=str,
        default=None,
        help="Resume an existing session id instead of creating one.",
    )
    parser.add_argument(
        "--customer",
        type=str,
        default=None,
        help="Seed the 'customer' slot, as a CRM lookup would.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="HTTP timeout in seconds per request (default: 60).",
    )
    return parser.parse_args()


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _request(
    method: str,
    url: str,
    *,
    timeout: float,
    payload: Optional[Dict[str, Any]] = None,
    max_attempts: int = 5,
) -> Dict[str, Any]:
    """
    Send one request, retrying on connection problems.

    Backoff: 3s, 6s, 9s, ... capped at 30s. HTTP errors are not retried.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            resp = requests.request(method, url, json=payload, timeout=timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            if attempt >= max_attempts:
                raise
            delay = min(3 * attempt, 30)
            print(f"\n[client] {exc.__class__.__name__}: retrying in {delay}s (Ctrl+C to stop)")
            time.sleep(delay)
            continue

        if resp.status_code == 204:
            return {}
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail")
            except ValueError:
                detail = resp.text
            raise RuntimeError(f"{method} {url} -> HTTP {resp.status_code}: {detail}")
        return resp.json()


def create_session(args: argparse.Namespace) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"owner_id": args.owner, "platform": "console"}
    if args.customer:
        payload["slots"] = {"customer": args.customer}
    return _request("POST", f"{args.server}/sessions", timeout=args.timeout, payload=payload)


def print_slots(slots: Dict[str, str]) -> None:
    filled = {k: v for k, v in slots.items() if v}
    print(json.dumps(filled, ensure_ascii=False, indent=2) if filled else "(no slots filled yet)")
    print()


# ---------------------------------------------------------------------------
# REPL
# ---------------------------------------------------------------------------


def run(args: argparse.Namespace) -> None:
    if args.session:
        session_id = args.session
        record = _request("GET", f"{args.server}/sessions/{session_id}", timeout=args.timeout)
        question = record.get("current_question")
        if record.get("status") == "completed":
            print("Session is already completed.\n")
            print(f"Summary: {record.get('summary')}")
            return
    else:
        created = create_session(args)
        session_id = created["session_id"]
        question = created["initial_question"]

    print("Answer the questions and press Enter. Commands: /slots /end /quit\n")
    print(f"[client] server  : {args.server}")
    print(f"[client] session : {session_id}")
    print()
    print(f"Assistant: {question}\n")

    base = f"{args.server}/sessions/{session_id}"
    while True:
        try:
            text = input("You: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye.")
            return

        if not text:
            continue
        command = text.lower()
        if command in {"/quit", "/exit"}:
            print("Bye. (session left open)")
            return
        if command == "/slots":
            record = _request("GET", base, timeout=args.timeout)
            print_slots(record.get("slots") or {})
            continue
        if command == "/end":
            ended = _request("POST", f"{base}/end", timeout=args.timeout)
            print(f"\nSummary: {ended.get('summary')}\n")
            print_slots(ended.get("slots") or {})
            return

        result = _request("POST", f"{base}/answers", timeout=args.timeout, payload={"answer": text})
        if result.get("acknowledgement"):
            print(f"\nAssistant: {result['acknowledgement']}")
        if result.get("is_complete"):
            print(f"\nDone after {result.get('questions_count')} questions.")
            print(f"Summary: {result.get('summary')}\n")
            print_slots(result.get("slots") or {})
            return
        print(f"Assistant: {result.get('next_question')}\n")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    args = parse_args()
    args.server = args.server.rstrip("/")
    try:
        run(args)
    except KeyboardInterrupt:
        print("\nBye.")
        sys.exit(0)
    except (requests.RequestException, RuntimeError) as exc:
        print(f"\nError: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
