"""Core (UI-agnostic) defect tracker logic.

This package contains:
- gviz reads of the defect spreadsheet (raw tables)
- row normalization into defect records
- dashboard aggregation and summary-table filtering (JSON-serializable payloads)
- xlsx export with embedded images
- write payloads for the Apps Script endpoints
"""
