from sheetqa.streaming.throttle import StreamAccumulator, StreamingThrottle, ThrottleConfig, render_message

__all__ = ["StreamAccumulator", "StreamingThrottle", "ThrottleConfig", "render_message"]
