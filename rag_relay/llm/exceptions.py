class GenerationError(Exception):
    """The model service failed: unreachable, rejected the call, broke the stream, or reported an error."""
