from web3 import Web3
import logging

from .. import config

logger = logging.getLogger(__name__)

NODE_REQUEST_TIMEOUT_SECONDS = 5


def node_status() -> dict:
    """Reports whether the configured Ethereum node answers.

    Only informational: signatures are recovered locally, so login keeps
    working when the node is down or not configured.
    """
    if not config.ETH_NODE_URL:
        return {"configured": False, "connected": False}

    try:
        w3 = Web3(Web3.HTTPProvider(
            config.ETH_NODE_URL,
            request_kwargs={"timeout": NODE_REQUEST_TIMEOUT_SECONDS},
        ))
        connected = w3.is_connected()
    except Exception as e:
        logger.warning(f"Error while checking Ethereum node connectivity: {e}")
        connected = False

    if not connected:
        logger.warning("Ethereum node is not reachable.")
        return {"configured": True, "connected": False}

    try:
        chain_id = w3.eth.chain_id
    except Exception as e:
        logger.warning(f"Could not read chain id from Ethereum node: {e}")
        chain_id = None
    return {"configured": True, "connected": True, "chainId": chain_id}
