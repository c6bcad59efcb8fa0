"""Work-order (OT) compliance and billing dashboard logic.

This package contains:
- cell normalizers, row ingestion and duplicate-OT reconciliation (XLSX -> records)
- filter state and engine settings
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
