"""Job lifecycle, ingestion and image relay components."""
