# =============================================================================
# PROPOSAL RELAY
# Module: collector/governor.py
# Purpose: Event ABI of the OpenZeppelin-style governor (ENS DAO)
# =============================================================================
#
# Only the events are listed: the relay reads logs, it never calls the
# contract. Every log of the governor is decoded against this ABI and only
# ProposalCreated is kept.
#
# =============================================================================

PROPOSAL_CREATED = "ProposalCreated"


def _input(name: str, type_: str, indexed: bool = False) -> dict:
    return {
        "indexed": indexed,
        "internalType": type_,
        "name": name,
        "type": type_,
    }


GOVERNOR_EVENT_ABI = [
    {
        "anonymous": False,
        "inputs": [_input("proposalId", "uint256")],
        "name": "ProposalCanceled",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            _input("proposalId", "uint256"),
            _input("proposer", "address"),
            _input("targets", "address[]"),
            _input("values", "uint256[]"),
            _input("signatures", "string[]"),
            _input("calldatas", "bytes[]"),
            _input("startBlock", "uint256"),
            _input("endBlock", "uint256"),
            _input("description", "string"),
        ],
        "name": PROPOSAL_CREATED,
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [_input("proposalId", "uint256")],
        "name": "ProposalExecuted",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            _input("proposalId", "uint256"),
            _input("eta", "uint256"),
        ],
        "name": "ProposalQueued",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            _input("voter", "address", indexed=True),
            _input("proposalId", "uint256"),
            _input("support", "uint8"),
            _input("weight", "uint256"),
            _input("reason", "string"),
        ],
        "name": "VoteCast",
        "type": "event",
    },
]

GOVERNOR_EVENT_NAMES = [entry["name"] for entry in GOVERNOR_EVENT_ABI]
