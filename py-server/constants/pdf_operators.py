"""
PDF Operator Constants

Content stream operators emitted when drawing overlays (watermarks, page
numbers, redaction boxes) and when rendering plain text into new pages.

Reference: ISO 32000-1:2008, Annex A
"""

# ==============================================================================
# Graphics State Operators (ISO 32000 8.4.4)
# ==============================================================================
OP_SAVE_STATE = b'q'                 # Save graphics state
OP_RESTORE_STATE = b'Q'              # Restore graphics state
OP_SET_GRAPHICS_STATE_PARAMS = b'gs' # Set parameters from graphics state parameter dict

# ==============================================================================
# Color Operators (ISO 32000 8.6.8)
# ==============================================================================
OP_SET_RGB_COLOR_FILL = b'rg'        # Set RGB color for non-stroking

# ==============================================================================
# Text Operators (ISO 32000 9.3, 9.4)
# ==============================================================================
OP_BEGIN_TEXT = b'BT'             # Begin text object
OP_END_TEXT = b'ET'               # End text object
OP_SET_FONT = b'Tf'               # Set text font and size
OP_MOVE_TEXT = b'Td'              # Move text position
OP_SHOW_TEXT = b'Tj'              # Show a text string

# ==============================================================================
# Path Operators (ISO 32000 8.5.2, 8.5.3)
# ==============================================================================
OP_RECTANGLE = b're'      # Append rectangle
OP_FILL = b'f'            # Fill path using nonzero winding number rule
