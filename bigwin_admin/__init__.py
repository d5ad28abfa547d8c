"""
BigWin Admin Backend

Back-office service for the BigWin gaming platform that provides:
- Approval workflow for game credit, redeem and withdrawal requests
- Scoped admin views over users, wallets and game profiles
- Real-time dashboard updates over WebSocket
"""

__version__ = "0.1.0"
__author__ = "BigWin Team"
