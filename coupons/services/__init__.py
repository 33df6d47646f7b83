"""
Ingestion services.

- apify_client.py: job-runner API client (datasets, request log)
- dataset_fetcher.py: dataset retrieval and fetch-time dedup
- item_parser.py: raw record validation
- locale_resolver.py: locale inference from hints and domain tables
- upsert_engine.py: per-record create/update/archive logic
- anomaly_detector.py: per-page count anomaly detection
- run_reconciler.py: removal/staleness sweeps and run finalisation
- ingestion_pipeline.py: orchestration of a whole run
- maintenance.py: retention cleanup and retry selection
"""
