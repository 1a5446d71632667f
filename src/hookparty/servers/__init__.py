"""HTTP listeners for hook ingestion and inbound SMS."""
