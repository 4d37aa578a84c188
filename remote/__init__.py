"""
Remote API service core: id resolution, request preparation and transport
"""
