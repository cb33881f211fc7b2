"""Compare the live database against the lucky draw models.

Exit status: 0 in sync, 1 drift found, 2 check could not run.
"""

from __future__ import annotations

import sys

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext

from luckydraw.db.engine import make_engine
from luckydraw.models import Base


def _print_ops(ops, indent: int = 0) -> None:
    prefix = "  " * indent
    for op in ops:
        print(f"{prefix}- {op}")
        nested = getattr(op, "ops", None)
        if nested:
            _print_ops(nested, indent + 1)


def main() -> int:
    engine = make_engine()
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except Exception as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2

    if upgrade_ops is None or upgrade_ops.is_empty():
        print(f"Schema drift check: OK for {url_display}.")
        return 0
    print(f"Schema drift check: FAILED for {url_display}. Pending operations:")
    _print_ops(upgrade_ops.ops or [])
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
