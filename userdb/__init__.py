from .db import Database, RunResult, Statement, initialize

__all__ = ["Database", "RunResult", "Statement", "initialize"]
