"""
argthread __init__ docstring

"""
