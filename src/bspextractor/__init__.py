"""
BSP scene extraction from the memory image of a running game build.
"""
