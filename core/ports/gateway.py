from typing import Any, Dict, Protocol


class PaymentGatewayPort(Protocol):
    async def charge(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    async def get_status(self, order_id: str) -> Dict[str, Any]: ...
