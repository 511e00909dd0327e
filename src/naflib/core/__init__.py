"""
Leaf codecs of the archive format: varints, the header, symbol alphabets, intervals and mask runs.
"""
