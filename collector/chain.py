# =============================================================================
# PROPOSAL RELAY
# Module: collector/chain.py
# Purpose: On-chain proposal source (governor ProposalCreated logs)
# =============================================================================
#
# PIPELINE:
# 1. Read the latest block number
# 2. Fetch governor logs for [latest - window, latest]
# 3. Decode every log against the governor event ABI
# 4. Keep ProposalCreated entries with a transaction hash
# 5. Normalize to ProposalEvent (source = OnChain)
#
# The window is deliberately small: the relay only looks at what happened
# since roughly the previous tick. No historical backfill.
#
# =============================================================================

import logging
from typing import Any, List, Mapping, Optional

from web3 import Web3
from web3.exceptions import LogTopicError, MismatchedABI

from shared.enums import ProposalSource
from shared.exceptions import SourceFetchError

from .base import SourceAdapter
from .governor import GOVERNOR_EVENT_ABI, GOVERNOR_EVENT_NAMES, PROPOSAL_CREATED
from .models import ProposalEvent

logger = logging.getLogger(__name__)


class ChainClient:
    """
    Thin read-only wrapper around web3.py for the governor contract.

    Features:
    - Latest block height and governor log retrieval
    - Log decoding against the governor event ABI
    - Reverse ENS name lookup
    """

    DEFAULT_TIMEOUT = 30  # seconds

    def __init__(
        self,
        rpc_url: str,
        governor_address: str,
        timeout: int = DEFAULT_TIMEOUT,
        w3: Optional[Web3] = None,
    ):
        """
        Initialize the chain client.

        Args:
            rpc_url: HTTP JSON-RPC endpoint (mainnet)
            governor_address: Governor contract address
            timeout: Request timeout in seconds
            w3: Pre-built Web3 instance (tests)
        """
        self.w3 = w3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        )
        self.governor_address = Web3.to_checksum_address(governor_address)
        self.contract = self.w3.eth.contract(
            address=self.governor_address,
            abi=GOVERNOR_EVENT_ABI,
        )

    def latest_block(self) -> int:
        return int(self.w3.eth.block_number)

    def get_logs(self, from_block: int, to_block: int) -> List[Mapping[str, Any]]:
        return list(self.w3.eth.get_logs({
            "address": self.governor_address,
            "fromBlock": from_block,
            "toBlock": to_block,
        }))

    def decode_log(self, log: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        """
        Decode a raw log against every governor event.

        Returns:
            web3 EventData (with "event" and "args"), or None if the log
            matches no event of the ABI
        """
        for name in GOVERNOR_EVENT_NAMES:
            event = getattr(self.contract.events, name)()
            try:
                return event.process_log(log)
            except (MismatchedABI, LogTopicError):
                continue
        return None

    def ens_name(self, address: str) -> Optional[str]:
        """Reverse-resolve an address to its primary ENS name."""
        return self.w3.ens.name(Web3.to_checksum_address(address))


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value
    return Web3.to_hex(value)


class ChainSource(SourceAdapter):
    """Recent ProposalCreated events of the governor contract."""

    DEFAULT_WINDOW_BLOCKS = 50

    def __init__(self, client: ChainClient, window_blocks: int = DEFAULT_WINDOW_BLOCKS):
        self.client = client
        self.window_blocks = window_blocks

    @property
    def source_name(self) -> str:
        return "chain"

    def fetch_recent(self) -> List[ProposalEvent]:
        """
        Fetch ProposalCreated events of the last window_blocks blocks.

        Raises:
            SourceFetchError: If the RPC endpoint fails
        """
        try:
            latest = self.client.latest_block()
            from_block = max(0, latest - self.window_blocks)
            logger.info(f"Fetching governor logs: blocks {from_block}..{latest}")
            logs = self.client.get_logs(from_block, latest)
        except Exception as e:
            raise SourceFetchError(f"RPC request failed: {e}", self.source_name) from e

        events: List[ProposalEvent] = []
        for log in logs:
            tx_hash = log.get("transactionHash")
            if tx_hash is None:
                logger.debug("Skipping pending log without transaction hash")
                continue

            decoded = self.client.decode_log(log)
            if decoded is None:
                logger.debug(f"Skipping log not in governor ABI (tx {_to_hex(tx_hash)})")
                continue
            if decoded["event"] != PROPOSAL_CREATED:
                continue

            args = decoded["args"]
            events.append(ProposalEvent(
                id=str(int(args["proposalId"])),
                source=ProposalSource.ONCHAIN,
                proposer=str(args["proposer"]),
                body=args["description"],
                title=None,
                transaction_hash=_to_hex(tx_hash),
                block_number=log.get("blockNumber"),
            ))

        logger.info(f"Chain: {len(logs)} logs, {len(events)} ProposalCreated")
        return events
