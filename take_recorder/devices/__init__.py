"""Hardware-backed capture, playback and routing adapters.

Modules are imported on demand: sounddevice and pulsectl load native
libraries at import time.
"""
