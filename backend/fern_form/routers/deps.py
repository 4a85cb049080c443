import sqlite3

from fastapi import Depends, Request

from ..api import FormContext
from ..config import load_config
from ..db.database import get_db
from ..engines.hooks import HookBus


def db_conn(request: Request):
    conn = get_db(getattr(request.app.state, "db_path", None))
    try:
        yield conn
    finally:
        conn.close()


def get_hooks(request: Request) -> HookBus:
    hooks = getattr(request.app.state, "hooks", None)
    if hooks is None:
        hooks = HookBus()
        request.app.state.hooks = hooks
    return hooks


def form_context(
    db: sqlite3.Connection = Depends(db_conn),
    hooks: HookBus = Depends(get_hooks),
) -> FormContext:
    return FormContext(conn=db, config=load_config(db, hooks), hooks=hooks)
