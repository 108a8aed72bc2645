"""
voxprint: text-independent speaker identification

Builds LPC voice prints of enrolled speakers and ranks them against
unknown voice samples.
"""

__version__ = "1.0.0"
__author__ = "voxprint developers"
__description__ = "LPC voice print speaker identification"
