#!/usr/bin/env python3
"""
Generates sample branch exports for trying out stock-audit.

Run from the repo root:
    python sample-data/generate_samples.py
    stock-audit process sample-data/IRA_sample.xlsx sample-data/CC_sample.xlsx --no-save

Files written:
  IRA_sample.xlsx
    - Placeholder header row (1, 2, 3, ...) above the real header, the way
      some branch systems export it
    - Branch cells in mixed forms: full label, bare city, "PT. APL" name
    - One row whose branch matches nothing in the directory
  CC_sample.xlsx
    - Regular header with "Plant" as the branch column
    - Rows marked "Counted" whose %CountComp is below 1 (repaired to 1)
  customers_sample.xlsx
    - "Cabang" branch column holding names and codes
    - A duplicated customer number and a row without a name
"""

from pathlib import Path

import openpyxl

OUT_DIR = Path(__file__).parent


def save(rows: list[list], filename: str) -> None:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    for row in rows:
        ws.append(row)
    wb.save(OUT_DIR / filename)
    print(f"Written: {OUT_DIR / filename}")


# ── IRA ──────────────────────────────────────────────────────────────────────
ira_rows = [
    [1, 2, 3, 4, 5],
    ["Branch", "Material", "Description", "%IRALine", "Ind_IRALine"],
    ["1940 - PT. APL SURABAYA", "M-1001", "Paracetamol 500mg", 1, "Match"],
    ["surabaya", "M-1002", "Amoxicillin 250mg", 0, "Not Match"],
    ["PT. APL MEDAN", "M-1003", "Vitamin C 1000mg", 1, "Match"],
    ["PT. APL MEDAN", "M-1004", "Ibuprofen 400mg", 0, "Match"],
    ["medan", "M-1005", "Cetirizine 10mg", 0, "Not Match"],
    ["PT. APL JAKARTA 1", "M-1006", "Omeprazole 20mg", 1, "Match"],
    ["UNKNOWN DEPOT", "M-1007", "Loratadine 10mg", 1, "Match"],
]

# ── CC ───────────────────────────────────────────────────────────────────────
cc_rows = [
    ["Plant", "Material", "Count Status", "%CountComp"],
    ["1940 - PT. APL SURABAYA", "M-2001", "Counted", 1],
    ["1940 - PT. APL SURABAYA", "M-2002", "Counted", 0.5],
    ["1940 - PT. APL SURABAYA", "M-2003", "Not Counted", 0],
    ["PT. APL BANDUNG", "M-2004", "Counted", 0],
    ["PT. APL BANDUNG", "M-2005", "Not Counted", 0.75],
    ["denpasar", "M-2006", "Not Counted", 1],
]

# ── Customers ────────────────────────────────────────────────────────────────
customer_rows = [
    ["No Cust", "Name", "Street", "City", "Region", "Postal code", "Country", "Telephone", "Cabang"],
    [500001, "Apotek Sehat", "Jl. Darmo 10", "Surabaya", "Jawa Timur", "60241", "ID", "031-555001", "PT. APL SURABAYA"],
    [500002, "Apotek Sentosa", "Jl. Asia Afrika 5", "Bandung", "Jawa Barat", "40111", "ID", "022-555002", "1922"],
    [500001, "Apotek Sehat (dup)", "Jl. Darmo 12", "Surabaya", "Jawa Timur", "60241", "ID", "031-555003", "1940"],
    [500003, None, "Jl. Gatot Subroto 1", "Medan", "Sumatera Utara", "20112", "ID", "061-555004", "1951"],
    [500004, "Toko Obat Makmur", "Jl. Sudirman 8", "Surabaya", "Jawa Timur", "60271", "ID", "031-555005", "surabaya"],
]

if __name__ == "__main__":
    save(ira_rows, "IRA_sample.xlsx")
    save(cc_rows, "CC_sample.xlsx")
    save(customer_rows, "customers_sample.xlsx")
