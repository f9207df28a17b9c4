
"""
ERP-A（Tiny API v2）HTTP 客户端
  - 所有接口都是 POST {base}/<endpoint>.php?token=...&formato=json；
  - 业务结果在 retorno.status（OK / Erro），HTTP 200 也可能是失败；
  - token 属于各商家的 SystemIntegration.credentials，不走 CredentialManager。
"""

from __future__ import annotations
import json, logging, time, requests
from typing import Any, Dict, Optional
from urllib.parse import urljoin

from marketplace_hub.core.config import settings
from marketplace_hub.integrations.erp.errors import ErpError, ErpPayloadError
from marketplace_hub.integrations.erp.schemas import ErpRetorno
from marketplace_hub.utils.backoff import calc_next_delay, with_jitter

logger = logging.getLogger(__name__)


class ErpClient:

    def __init__(
        self,
        base_url: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        read_timeout: Optional[int] = None,
        max_attempts: Optional[int] = None,
        session: Optional[requests.Session] = None,
        backoff_base_sec: float = 1.0,
    ) -> None:
        self.base_url = (base_url or settings.ERP_BASE_URL).rstrip("/") + "/"
        self.connect_timeout = connect_timeout or settings.ERP_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.ERP_READ_TIMEOUT
        self.max_attempts = max_attempts or settings.ERP_HTTP_RETRIES
        self.backoff_base_sec = backoff_base_sec
        self._session = session or requests.Session()


    # ---------- Public ----------
    def get_info(self, token: str) -> ErpRetorno:
        """连通性探测：info.php 返回 retorno.status == OK 即视为可用。"""
        return self._call("info.php", token, check=False)


    def send_order(self, token: str, pedido: Dict[str, Any]) -> Optional[str]:
        """pedido.incluir.php；返回 Tiny 分配的订单 id。"""
        retorno = self._call("pedido.incluir.php", token, data={"pedido": json.dumps(pedido, ensure_ascii=False)})
        registros = retorno.registros or []
        if isinstance(registros, dict):
            registros = [registros]
        for row in registros:
            registro = (row or {}).get("registro") or {}
            if registro.get("id"):
                return str(registro["id"])
        raise ErpPayloadError(f"pedido.incluir.php returned no id: {retorno.model_dump()}")


    def update_order_status(self, token: str, erp_order_id: str, situacao: str) -> bool:
        self._call("pedido.alterar.situacao.php", token, data={"id": erp_order_id, "situacao": situacao})
        logger.info("erp.order.status erp_order=%s situacao=%s", erp_order_id, situacao)
        return True


    # ---------- Internals ----------
    def _call(self, endpoint: str, token: str, *, data: Optional[Dict[str, Any]] = None, check: bool = True) -> ErpRetorno:
        url = urljoin(self.base_url, endpoint)
        params = {"token": token, "formato": "json"}

        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = self._session.request(
                    "POST", url, params=params, data=data, timeout=(self.connect_timeout, self.read_timeout)
                )
            except requests.RequestException as e:
                logger.warning("erp.http.error endpoint=%s attempt=%s err=%s", endpoint, attempt, e)
                if attempt == self.max_attempts:
                    raise ErpError(f"request error: {e}") from e
                self._sleep_backoff(attempt)
                continue

            if resp.status_code >= 500 or resp.status_code == 429:
                if attempt == self.max_attempts:
                    raise ErpError(f"{resp.status_code} after retries: {(resp.text or '')[:300]}")
                self._sleep_backoff(attempt)
                continue

            if resp.status_code >= 400:
                raise ErpError(f"{resp.status_code} client error: {(resp.text or '')[:300]}")

            retorno = self._parse(resp)
            if check and not retorno.ok:
                raise ErpError(f"{endpoint} failed: status={retorno.status} erros={retorno.erros}")
            return retorno

        raise ErpError("unreachable retry loop")


    def _parse(self, resp: requests.Response) -> ErpRetorno:
        try:
            body = resp.json()
        except ValueError as e:
            raise ErpPayloadError(f"non-JSON response (status={resp.status_code}): {(resp.text or '')[:300]}") from e
        if not isinstance(body, dict) or not isinstance(body.get("retorno"), dict):
            raise ErpPayloadError("response without retorno object")
        return ErpRetorno.model_validate(body["retorno"])


    def _sleep_backoff(self, attempt: int) -> None:
        if self.backoff_base_sec <= 0:
            return
        time.sleep(with_jitter(calc_next_delay(attempt, base_seconds=self.backoff_base_sec)))
