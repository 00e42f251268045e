"""KolaySoft e-Archive driver package."""

from drivers.kolaysoft.kolaysoft_driver import KolaySoftDriver, LIVE_WSDL, TEST_WSDL, SERVICE_NS

__all__ = ["KolaySoftDriver", "LIVE_WSDL", "TEST_WSDL", "SERVICE_NS"]
