"""Task execution: ordering, dispatch, commands and cancellation."""
