"""Frame sources.  The microphone backend is imported on demand from pulsescope.io.microphone."""
