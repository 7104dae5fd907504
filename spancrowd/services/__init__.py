"""Services for spancrowd: offset mapping, span storage and crowd tasks."""
