"""Native messaging host: stdio framing, temp files, editor launch."""
