"""Order ingest service: Kafka to PostgreSQL with a bounded read cache."""
