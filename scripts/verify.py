"""
Excel Verification Script

Verifies data integrity of the Excel order ledger.
Run from project root: python scripts/verify.py
"""

import sys
from datetime import datetime

import pandas as pd

from restaurante.services.excel_manager import ExcelManager


def verify_excel() -> bool:
    """Verify Excel file integrity after simulation."""
    excel_file = ExcelManager.orders_file()

    print("=" * 60)
    print("EXCEL VERIFICATION REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"File: {excel_file}")
    print("=" * 60)

    if not excel_file.exists():
        print("\nExcel file not found!")
        print("   Run the simulation first: python scripts/simulate.py")
        return False

    try:
        df = pd.read_excel(excel_file, engine="openpyxl")
        print("\nFile loaded successfully!")
    except (OSError, ValueError) as e:
        print(f"\nCould not read Excel file: {e}")
        return False

    print("\nSTATISTICS:")
    print(f"   Total Orders: {len(df)}")
    print(f"   Columns: {len(df.columns)}")

    missing = [col for col in ExcelManager.ORDER_COLUMNS if col not in df.columns]
    if missing:
        print(f"\nMissing Columns: {missing}")
    else:
        print("\nAll required columns present")

    ok = not missing

    if "order_id" in df.columns:
        duplicates = df["order_id"].duplicated().sum()
        if duplicates > 0:
            print(f"\n{duplicates} duplicate order IDs found!")
            ok = False
        else:
            print("No duplicate order IDs")

    if {"user_id", "client_ref"} <= set(df.columns):
        # Exactly one party per order
        both = df["user_id"].notna() == df["client_ref"].notna()
        if both.any():
            print(f"\n{int(both.sum())} rows without exactly one of user_id / client_ref")
            ok = False

    if "total" in df.columns and len(df) > 0:
        print("\nREVENUE:")
        print(f"   Total: ${df['total'].sum():.2f}")
        print(f"   Average: ${df['total'].mean():.2f}")
        if "payment_method" in df.columns:
            print(df.groupby("payment_method")["total"].agg(["count", "sum"]).to_string())

    print("\nRECENT ORDERS:")
    print("-" * 60)
    if len(df) > 0:
        cols = [c for c in ["order_id", "payment_method", "total", "status", "items"] if c in df.columns]
        print(df[cols].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("VERIFICATION COMPLETE" if ok else "VERIFICATION FOUND PROBLEMS")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_excel() else 1)
