"""
Extractor App - Date-range price extraction

Responsibilities:
- Validate a requested date range (large ranges need explicit confirmation)
- Serve each day from the persistent cache when present
- Otherwise fetch it through an ordered list of access paths, with per-path
  linear-backoff retries, and persist the result
- Emit one progress snapshot per day without blocking the loop
- Allow at most one extraction at a time

Output:
- ExtractionResult with every record gathered and cache-hit statistics
- CLI: records_<start>_<end>.jsonl under OUTPUT_DIR
"""
