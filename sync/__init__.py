"""
Ride synchronization: validation gate, row commands and the retry queue
"""
