# Router package
from . import auth, usage, upc
