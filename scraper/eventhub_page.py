"""Page extractor for the EventHub listing."""
import logging
from typing import List, Optional

import requests
from bs4 import BeautifulSoup

from processor.errors import TransportError
from processor.models import RawFields

logger = logging.getLogger(__name__)

CARD_SELECTOR = 'form #events .col-lg-4 .card'
PARTICIPANT_ICON_SELECTOR = '.fa-user-check, .fa-people-carry-box'
TEAM_ICON_CLASSES = {'fa-users', 'fa-user', 'fa-street-view', 'fa-people'}


class EventHubScraper:
    """Scraper for the EventHub event listing page."""

    BASE_URL = "https://eventhubcc.vit.ac.in/EventHub/"
    USER_AGENT = "Mozilla/5.0"

    def __init__(
        self,
        url: str = BASE_URL,
        timeout: int = 30,
        verify_tls: bool = True,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the scraper.

        Args:
            url: Listing page URL
            timeout: HTTP request timeout in seconds (default: 30)
            verify_tls: Validate the server certificate; the listing host
                serves a self-signed chain, so deployments may disable it
            session: Optional requests session
        """
        self.url = url
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.session = session or requests.Session()

    def fetch_raw_fields(self) -> List[RawFields]:
        """
        Fetch the listing and extract one RawFields per event card.

        Returns:
            RawFields in page order

        Raises:
            TransportError: If the page cannot be fetched
        """
        html_content = self._fetch_listing_html()
        raw_events = self._parse_cards(html_content)
        logger.info(f"Extracted {len(raw_events)} cards from {self.url}")
        return raw_events

    def _fetch_listing_html(self) -> str:
        """
        Fetch the listing HTML in a single attempt.

        Returns:
            HTML content as string

        Raises:
            TransportError: On timeout, connection/TLS failure or non-2xx status
        """
        logger.info(f"Fetching {self.url}")
        try:
            response = self.session.get(
                self.url,
                timeout=self.timeout,
                verify=self.verify_tls,
                headers={'User-Agent': self.USER_AGENT}
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise TransportError(f"listing fetch failed: {e}") from e
        return response.text

    def _parse_cards(self, html_content: str) -> List[RawFields]:
        soup = BeautifulSoup(html_content, 'html.parser')
        cards = soup.select(CARD_SELECTOR)
        logger.info(f"Found {len(cards)} cards")

        raw_events = []
        for card in cards:
            try:
                raw_events.append(self._parse_card(card))
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Failed to parse event card: {e}")
                continue

        return raw_events

    def _parse_card(self, card) -> RawFields:
        """
        Extract the raw fields of a single card without normalizing them.

        Args:
            card: BeautifulSoup element for one ``.card``

        Returns:
            RawFields; missing fields are None
        """
        button = card.select_one('button[name="eid"]')
        title_elem = card.select_one('.card-title span')

        category_text = None
        for div in card.find_all('div'):
            text = div.get_text(strip=True)
            if text.startswith('(') and text.endswith(')'):
                category_text = text

        participant_text = None
        participant_icon = card.select_one(PARTICIPANT_ICON_SELECTOR)
        if participant_icon is not None:
            participant_text = _next_span_text(participant_icon)

        return RawFields(
            event_source_id=button.get('value') if button else None,
            title=title_elem.get_text() if title_elem else None,
            date_text=_icon_text(card, 'fa-calendar-days'),
            venue_text=_icon_text(card, 'fa-map-location-dot'),
            category_text=category_text,
            participant_text=participant_text,
            fee_text=_icon_text(card, 'fa-indian-rupee-sign'),
            team_size_text=_team_size_text(card)
        )


def _next_span_text(icon) -> Optional[str]:
    sibling = icon.find_next_sibling()
    if sibling is None or sibling.name != 'span':
        return None
    return sibling.get_text(strip=True)


def _icon_text(card, icon_class: str) -> Optional[str]:
    icon = card.select_one(f'.{icon_class}')
    if icon is None:
        return None
    return _next_span_text(icon)


def _team_size_text(card) -> Optional[str]:
    """Parent text of the last team icon whose label carries a number."""
    found = None
    for icon in card.find_all('i'):
        classes = set(icon.get('class') or [])
        if not classes & TEAM_ICON_CLASSES or icon.parent is None:
            continue
        text = icon.parent.get_text(' ', strip=True)
        if any(ch.isdigit() for ch in text):
            found = text
    return found
