"""
                Gestro Restaurant Platform

Backend for restaurant ordering, table reservations and the staff
back-office, with hybrid Mock/Real service architecture.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
