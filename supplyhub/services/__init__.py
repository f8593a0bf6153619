"""Domain services: request workflow, listing projections and file storage."""
