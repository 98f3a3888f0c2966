"""
PDF Dictionary Keys and Name Constants
"""

# Resource Dictionary Keys
KEY_EXT_GSTATE = "/ExtGState"
KEY_FONT = "/Font"

# Page Keys
KEY_ROTATE = "/Rotate"

# Object Types and Subtypes
VAL_TYPE1 = "/Type1"

# Font Dictionary Values
VAL_HELVETICA = "/Helvetica"
VAL_WIN_ANSI_ENCODING = "/WinAnsiEncoding"

# Resource name prefixes used for injected overlays
FONT_PREFIX = "FOv"
GSTATE_PREFIX = "GSOv"
