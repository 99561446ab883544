"""Runtime helpers shared by layers and callers: numeric precision and
recovery from accelerator memory exhaustion."""
