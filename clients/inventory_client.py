import requests
from typing import Optional, Dict, Any

class InventoryClient:
    def __init__(self, base_url: str, api_key: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.headers = {"X-Api-Key": api_key, "Content-Type": "application/json"}
        self.http = session or requests.Session()

    def _post(self, path: str, payload: Optional[Dict[str,Any]] = None, timeout: int = 60) -> Dict[str,Any]:
        r = self.http.post(f"{self.base_url}{path}", json=payload or {}, headers=self.headers, timeout=timeout)
        r.raise_for_status(); return r.json()

    def _get(self, path: str, timeout: int = 30) -> Dict[str,Any]:
        r = self.http.get(f"{self.base_url}{path}", headers=self.headers, timeout=timeout)
        r.raise_for_status(); return r.json()

    def start_flow(self) -> Dict[str,Any]:
        return self._post("/v1/flows")

    def get_flow(self, flow_id: str) -> Dict[str,Any]:
        return self._get(f"/v1/flows/{flow_id}")

    def scan(self, flow_id: str, raw_value: str, *, format: str = "unknown") -> Dict[str,Any]:
        return self._post(f"/v1/flows/{flow_id}/scan", {"raw_value": raw_value, "format": format})

    def search(self, flow_id: str, query: str) -> Dict[str,Any]:
        return self._post(f"/v1/flows/{flow_id}/search", {"query": query})

    def pick(self, flow_id: str, index: int) -> Dict[str,Any]:
        return self._post(f"/v1/flows/{flow_id}/pick", {"index": index})

    def manual(self, flow_id: str) -> Dict[str,Any]:
        return self._post(f"/v1/flows/{flow_id}/manual")

    def confirm(self, flow_id: str, product: Dict[str,Any], *, analyze: bool = True) -> Dict[str,Any]:
        return self._post(f"/v1/flows/{flow_id}/confirm", {"product": product, "analyze": analyze})

    def cancel(self, flow_id: str) -> Dict[str,Any]:
        return self._post(f"/v1/flows/{flow_id}/cancel")

    def analyze_product(self, product_id: int) -> Dict[str,Any]:
        return self._post(f"/v1/products/{product_id}/analyze")

    def analyze_all(self, *, limit: int = 100, timeout: int = 600) -> Dict[str,Any]:
        r = self.http.post(f"{self.base_url}/v1/products/analyze-all", params={"limit": limit},
                           json={}, headers=self.headers, timeout=timeout)
        r.raise_for_status(); return r.json()

    def test_connections(self) -> Dict[str,Any]:
        return self._get("/v1/connections/test")
