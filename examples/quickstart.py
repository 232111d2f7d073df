#!/usr/bin/env python3
"""
wikiserver Quickstart — the pages API lifecycle in one script.

Gets a token → creates a page → reads it → edits it → lists → deletes.
Run with: python examples/quickstart.py

Requires: pip install httpx
Server must be running with the demo accounts:
    wikiserver init-db --seed && wikiserver serve
"""

import sys
import uuid

import httpx

BASE = "http://localhost:8080"


def main():
    run_id = uuid.uuid4().hex[:6]
    client = httpx.Client(base_url=BASE, timeout=10)

    # ── Health check ──────────────────────────────────────────────
    print("Checking server health...")
    try:
        resp = client.get("/health")
    except httpx.ConnectError:
        print(f"Server not reachable at {BASE}")
        sys.exit(1)
    health = resp.json()
    print(f"  Database: {health['database']}")
    print(f"  Redis:    {health['redis']}")

    # ── Token ─────────────────────────────────────────────────────
    print("\n1. Getting an API token for foo...")
    resp = client.get("/api/token", headers={"login": "foo", "password": "bar"})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    client.headers["Authorization"] = f"Bearer {resp.text}"
    print(f"   Token: {resp.text[:24]}...")

    # ── Create ────────────────────────────────────────────────────
    name = f"Quickstart {run_id}"
    print(f"\n2. Creating page '{name}'...")
    resp = client.post("/api/pages", json={"name": name, "markdown": "# Hello\n\nFirst draft."})
    assert resp.status_code == 201, f"Failed: {resp.text}"

    pages = client.get("/api/pages").json()["pages"]
    page_id = next(p["id"] for p in pages if p["name"] == name)
    print(f"   Page id: {page_id}")

    # ── Read ──────────────────────────────────────────────────────
    print("\n3. Reading it back...")
    page = client.get(f"/api/pages/{page_id}").json()["page"]
    print(f"   HTML: {page['html']}")

    # ── Update ────────────────────────────────────────────────────
    print("\n4. Editing...")
    resp = client.put(f"/api/pages/{page_id}", json={"markdown": "# Hello\n\nSecond draft.", "client": run_id})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    print(f"   Markdown now: {client.get(f'/api/pages/{page_id}').json()['page']['markdown']!r}")

    # ── Duplicate name ────────────────────────────────────────────
    print("\n5. Creating the same name again (expect 409)...")
    resp = client.post("/api/pages", json={"name": name, "markdown": "again"})
    print(f"   {resp.status_code}: {resp.json()['error']}")

    # ── Delete ────────────────────────────────────────────────────
    print("\n6. Deleting...")
    resp = client.delete(f"/api/pages/{page_id}")
    assert resp.status_code == 200, f"Failed: {resp.text}"
    resp = client.get(f"/api/pages/{page_id}")
    print(f"   {resp.status_code}: {resp.json()['error']}")

    print("\nDone.")


if __name__ == "__main__":
    main()
