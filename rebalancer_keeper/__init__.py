"""
Rebalancer keeper: drives the on-chain trade summarization of a Uniswap V3
rebalancer contract and rebalances its position when price leaves the range.
"""

__version__ = "0.1.0"
