from __future__ import annotations

import os
from typing import Any, List

from fastapi import Body, FastAPI, HTTPException

from zellular.mock_node.storage import InMemorySequencer


def create_app(store: InMemorySequencer) -> FastAPI:
    app = FastAPI(title="zellular mock node", version="0.1.0")

    def _check_app(app_name: str) -> None:
        if app_name != store.app_name:
            raise HTTPException(status_code=404, detail=f"Unknown app {app_name!r}")

    @app.get("/healthz")
    def healthz():
        return {"ok": True, "app_name": store.app_name}

    @app.put("/node/{app_name}/batches")
    def put_batches(app_name: str, txs: List[Any] = Body(...)):
        _check_app(app_name)
        index = store.submit(txs)
        return {"status": "success", "message": "The batch is received successfully", "index": index}

    @app.get("/node/{app_name}/batches/finalized")
    def finalized(app_name: str, after: int = 0):
        _check_app(app_name)
        return {"status": "success", "data": store.finalized_after(after)}

    @app.get("/node/{app_name}/batches/finalized/last")
    def last_finalized(app_name: str):
        _check_app(app_name)
        return {"status": "success", "data": store.last_finalized()}

    @app.post("/subgraph")
    def subgraph(body: dict = Body(...)):
        if "operators" not in str(body.get("query", "")):
            return {"errors": [{"message": "only the operators query is supported"}]}
        return {"data": {"operators": store.operator_records()}}

    return app


def main() -> None:
    import uvicorn

    host = os.getenv("ZELLULAR_MOCK_HOST", "127.0.0.1")
    port = int(os.getenv("ZELLULAR_MOCK_PORT", "6001"))
    app_name = os.getenv("ZELLULAR_MOCK_APP_NAME", "simple_app")
    n_ops = max(1, int(os.getenv("ZELLULAR_MOCK_OPERATORS", "3")))
    finalize_every = int(os.getenv("ZELLULAR_MOCK_FINALIZE_EVERY", "1"))

    store = InMemorySequencer.with_operators(
        app_name,
        {f"op{i}": 10 for i in range(n_ops)},
        socket=f"http://{host}:{port}",
        finalize_every=finalize_every,
    )
    uvicorn.run(create_app(store), host=host, port=port, log_level="warning")


if __name__ == "__main__":
    main()
