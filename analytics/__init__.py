"""Pure analysis layer: build-name parsing, staleness classification, time helpers."""
