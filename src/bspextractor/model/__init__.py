"""
The MODEL layer contains pure data structures: the compiled-in schemas,
the profile table, the Scene value and the writers that serialize it.
It does not decode memory itself.
"""
