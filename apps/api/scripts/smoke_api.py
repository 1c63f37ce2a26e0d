from __future__ import annotations

import os
import sys

import httpx


def _assert_ok(response: httpx.Response, *, label: str) -> None:
    if response.status_code >= 400:
        raise RuntimeError(f"{label} failed: HTTP {response.status_code} body={response.text}")


def main() -> None:
    base_url = os.environ.get("API_BASE_URL", "http://localhost:8000")
    user_header = os.environ.get("AUTH_USER_ID_HEADER", "x-authenticated-user-id")
    user_id = os.environ["SMOKE_USER_ID"]
    workspace_id = os.environ["SMOKE_WORKSPACE_ID"]

    with httpx.Client(base_url=base_url, timeout=20.0, headers={user_header: user_id}) as client:
        health = client.get("/healthz")
        _assert_ok(health, label="GET /healthz")
        print("ok: GET /healthz")

        ready = client.get("/readyz")
        _assert_ok(ready, label="GET /readyz")
        print("ok: GET /readyz")

        accounts = client.get(f"/workspaces/{workspace_id}/social-accounts")
        _assert_ok(accounts, label="GET social-accounts")
        print(f"ok: GET social-accounts ({len(accounts.json())} connected)")

        posts = client.get(f"/workspaces/{workspace_id}/posts", params={"page_size": 20})
        _assert_ok(posts, label="GET posts")
        print(f"ok: GET posts (total={posts.json()['total_count']})")

        authorize = client.get(
            "/oauth/facebook/authorize", params={"workspace_id": workspace_id}
        )
        _assert_ok(authorize, label="GET /oauth/facebook/authorize")
        print("ok: GET /oauth/facebook/authorize")

        print(f"smoke complete: workspace={workspace_id} user={user_id}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001
        print(f"smoke failed: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
