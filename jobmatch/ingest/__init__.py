"""Client-side delivery queue and server-side ingestion."""
