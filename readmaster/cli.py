# readmaster/cli.py
import os

import uvicorn


def dev() -> None:
    uvicorn.run("readmaster.main:app", host="0.0.0.0", port=8000, reload=True)


def start() -> None:
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("readmaster.main:app", host="0.0.0.0", port=port)


def test() -> None:
    import pytest

    # Run the suite under tests/, stop after first failure
    raise SystemExit(pytest.main(["-x", "tests"]))
