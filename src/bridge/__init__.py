"""Call bridge between a telephony media stream and the realtime translation backend.

One ``CallBridge`` per phone call joins two legs:
caller (provider media stream WebSocket) <-> backend (realtime WebSocket).
"""
