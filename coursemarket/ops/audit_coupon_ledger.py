# coursemarket/ops/audit_coupon_ledger.py
from __future__ import annotations

import sys
from typing import Dict, List

from sqlalchemy import text
from sqlalchemy.orm import Session

from coursemarket.db import SessionLocal


def ledger_mismatches(db: Session) -> List[Dict[str, object]]:
    """Coupons whose used_count disagrees with their ledger rows."""
    rows = db.execute(
        text(
            """
            SELECT c.id, c.code, c.used_count, COUNT(r.id) AS ledger
              FROM coupons c
              LEFT JOIN coupon_redemptions r ON r.coupon_id = c.id
             GROUP BY c.id, c.code, c.used_count
            HAVING c.used_count <> COUNT(r.id)
             ORDER BY c.id
            """
        )
    )
    return [
        {"coupon_id": cid, "code": code, "used_count": used, "ledger_count": ledger}
        for cid, code, used, ledger in rows
    ]


def main() -> int:
    s = SessionLocal()
    try:
        bad = ledger_mismatches(s)
        s.rollback()
    finally:
        s.close()
    # solo reporta: used_count lo cambia únicamente el canje
    for m in bad:
        print(f"MISMATCH -> code={m['code']} used_count={m['used_count']} ledger={m['ledger_count']}")
    if not bad:
        print("OK -> used_count matches the ledger for every coupon")
    return 1 if bad else 0


if __name__ == "__main__":
    sys.exit(main())
