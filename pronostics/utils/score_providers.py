"""
External live score providers.

Each provider wraps one HTTP API and normalizes its payload into
``ExternalMatch`` records, so reconciliation never looks at raw JSON.
"""

import logging
import time
from collections import namedtuple
from datetime import datetime, timezone
from functools import wraps

import requests

logger = logging.getLogger(__name__)

UPCOMING = "UPCOMING"
LIVE = "LIVE"
FINISHED = "FINISHED"
CANCELLED = "CANCELLED"
RESCHEDULED = "RESCHEDULED"

FOOTBALL_DATA_ATTRIBUTION = "Data provided by football-data.org"
RUGBY_API_ATTRIBUTION = "Data provided by api-sports.io"

FOOTBALL_STATUS_MAP = {
    "SCHEDULED": UPCOMING,
    "TIMED": UPCOMING,
    "IN_PLAY": LIVE,
    "PAUSED": LIVE,
    "LIVE": LIVE,
    "FINISHED": FINISHED,
    "COMPLETED": FINISHED,
    "POSTPONED": CANCELLED,
    "SUSPENDED": CANCELLED,
    "CANCELLED": CANCELLED,
}

RUGBY_STATUS_MAP = {
    "NS": UPCOMING,
    "1H": LIVE,
    "HT": LIVE,
    "2H": LIVE,
    "ET": LIVE,
    "BT": LIVE,
    "PT": LIVE,
    "FT": FINISHED,
    "AET": FINISHED,
    "PEN": FINISHED,
    "AW": FINISHED,
    "POST": RESCHEDULED,
    "SUSP": CANCELLED,
    "INT": CANCELLED,
    "ABD": CANCELLED,
    "ABAN": CANCELLED,
    "CANC": CANCELLED,
}

# football-data.org reports how a finished game was decided
FOOTBALL_DURATION_MAP = {
    "REGULAR": "FT",
    "EXTRA_TIME": "AET",
    "PENALTY_SHOOTOUT": "PEN",
}


ExternalMatch = namedtuple(
    "ExternalMatch",
    [
        "external_id",
        "home_name",
        "away_name",
        "home_score",
        "away_score",
        "status",
        "external_status",
        "elapsed",
        "kickoff",
        "decided_by",
        "competition_name",
    ],
)


class ProviderError(Exception):
    """Raised when a score provider cannot be reached or answers garbage"""


def map_football_status(external_status):
    status = FOOTBALL_STATUS_MAP.get((external_status or "").upper())
    if status is None:
        logger.warning(f"Unknown football-data status '{external_status}', using {UPCOMING}")
        return UPCOMING
    return status


def map_rugby_status(external_status):
    status = RUGBY_STATUS_MAP.get((external_status or "").upper())
    if status is None:
        logger.warning(f"Unknown rugby status '{external_status}', using {UPCOMING}")
        return UPCOMING
    return status


def _parse_datetime(value):
    """Parse an ISO 8601 timestamp (with Z or offset) into aware UTC"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        logger.warning(f"Could not parse provider date '{value}'")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff

    Retries on 429, 5xx and network errors. Other HTTP errors (bad key,
    unknown resource) are raised straight away.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(self, *args, **kwargs)

                except requests.exceptions.HTTPError as e:
                    status_code = e.response.status_code if e.response is not None else 0
                    if status_code != 429 and status_code < 500:
                        raise

                    delay = base_delay * (backoff_factor**attempt)
                    if status_code == 429 and e.response is not None:
                        retry_after = e.response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            delay = int(retry_after)

                    logger.warning(
                        f"HTTP {status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    else:
                        raise

                except requests.exceptions.RequestException as e:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    else:
                        raise

            raise ProviderError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


class ScoreProvider:
    """
    Base HTTP client with rate limiting and failsafe mechanisms
    """

    name = "provider"
    attribution = None
    sport = None

    def __init__(self, api_key=None, api_base_url=None, timeout=15):
        self.api_key = api_key
        self.api_base_url = (api_base_url or "").rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "Pronostics/1.0"})
        self.session.headers.update(self._auth_headers())

        # Rate limiting configuration
        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = 0.5
        self.max_requests_per_minute = 10  # free tiers allow 10/min
        self.request_timestamps = []

    def _auth_headers(self):
        return {}

    @property
    def is_configured(self):
        return bool(self.api_key)

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"{self.name}: rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)
        self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, path, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()

        url = f"{self.api_base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response

        except requests.exceptions.Timeout:
            logger.warning(f"Request timeout for {url}")
            raise
        except requests.exceptions.ConnectionError:
            logger.warning(f"Connection error for {url}")
            raise
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code in (401, 403):
                logger.error(f"{self.name}: API key rejected ({e.response.status_code})")
            else:
                logger.warning(f"HTTP error for {url}: {e}")
            raise

    def _get_json(self, path, params=None):
        """GET a path and decode it, wrapping every failure in ProviderError"""
        if not self.is_configured:
            raise ProviderError(f"{self.name}: no API key configured")

        try:
            response = self._make_api_request(path, params=params)
            return response.json()
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{self.name}: request to {path} failed: {e}") from e
        except ValueError as e:
            raise ProviderError(f"{self.name}: invalid JSON from {path}") from e

    def get_rate_limit_status(self):
        """Get current rate limiting status"""
        current_time = time.time()
        recent_requests = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        return {
            "provider": self.name,
            "requests_last_minute": len(recent_requests),
            "max_requests_per_minute": self.max_requests_per_minute,
            "total_requests": self.request_count,
            "last_request_time": (
                datetime.fromtimestamp(self.last_request_time, tz=timezone.utc).isoformat()
                if self.last_request_time
                else None
            ),
        }

    def get_live_matches(self):
        raise NotImplementedError

    def get_matches_for_date(self, day=None):
        raise NotImplementedError

    def get_match(self, external_id):
        raise NotImplementedError

    def get_finished_matches(self, day=None):
        """Finished matches of a day (today by default)"""
        return [
            match for match in self.get_matches_for_date(day) if match.status == FINISHED
        ]


class FootballDataProvider(ScoreProvider):
    """football-data.org v4"""

    name = "football-data.org"
    attribution = FOOTBALL_DATA_ATTRIBUTION
    sport = "FOOTBALL"

    def __init__(self, api_key=None, api_base_url=None, competition_filter=None, timeout=15):
        super().__init__(
            api_key=api_key,
            api_base_url=api_base_url or "https://api.football-data.org/v4",
            timeout=timeout,
        )
        self.competition_filter = competition_filter

    def _auth_headers(self):
        return {"X-Auth-Token": self.api_key} if self.api_key else {}

    def _keep(self, match):
        if not self.competition_filter:
            return True
        return match.competition_name == self.competition_filter

    def parse_match(self, payload):
        """Normalize one football-data.org match object"""
        score = payload.get("score") or {}
        full_time = score.get("fullTime") or {}
        external_status = payload.get("status")

        return ExternalMatch(
            external_id=str(payload.get("id")) if payload.get("id") is not None else None,
            home_name=(payload.get("homeTeam") or {}).get("name"),
            away_name=(payload.get("awayTeam") or {}).get("name"),
            home_score=full_time.get("home"),
            away_score=full_time.get("away"),
            status=map_football_status(external_status),
            external_status=external_status,
            elapsed=payload.get("minute"),
            kickoff=_parse_datetime(payload.get("utcDate")),
            decided_by=FOOTBALL_DURATION_MAP.get(score.get("duration"), "FT"),
            competition_name=(payload.get("competition") or {}).get("name"),
        )

    def _parse_matches(self, data):
        matches = []
        for payload in (data or {}).get("matches", []):
            try:
                match = self.parse_match(payload)
            except (AttributeError, TypeError) as e:
                logger.warning(f"{self.name}: skipping malformed match: {e}")
                continue
            if self._keep(match):
                matches.append(match)
        return matches

    def get_live_matches(self):
        """Live matches, falling back to today's list when the filter is refused"""
        try:
            matches = self._parse_matches(self._get_json("/matches", {"status": "LIVE"}))
        except ProviderError as e:
            logger.warning(f"{self.name}: live endpoint failed ({e}), falling back to today's matches")
            matches = [
                match for match in self.get_matches_for_date() if match.status == LIVE
            ]

        logger.info(f"{self.name}: {len(matches)} live matches")
        return matches

    def get_matches_for_date(self, day=None):
        day = day or datetime.now(timezone.utc).date()
        return self._parse_matches(self._get_json("/matches", {"date": day.isoformat()}))

    def get_finished_matches(self, day=None):
        day = day or datetime.now(timezone.utc).date()
        data = self._get_json(
            "/matches",
            {"dateFrom": day.isoformat(), "dateTo": day.isoformat(), "status": "FINISHED"},
        )
        return [match for match in self._parse_matches(data) if match.status == FINISHED]

    def get_match(self, external_id):
        """One match by id, whatever its competition"""
        data = self._get_json(f"/matches/{external_id}")
        if not data or data.get("id") is None:
            return None
        return self.parse_match(data)


class RugbyApiProvider(ScoreProvider):
    """api-sports.io rugby v1"""

    name = "api-rugby"
    attribution = RUGBY_API_ATTRIBUTION
    sport = "RUGBY"

    def __init__(self, api_key=None, api_base_url=None, timeout=15):
        super().__init__(
            api_key=api_key,
            api_base_url=api_base_url or "https://v1.rugby.api-sports.io",
            timeout=timeout,
        )

    def _auth_headers(self):
        return {"x-apisports-key": self.api_key} if self.api_key else {}

    def parse_match(self, payload):
        """Normalize one api-sports rugby game object"""
        status = payload.get("status") or {}
        teams = payload.get("teams") or {}
        scores = payload.get("scores") or {}
        external_status = status.get("short")

        decided_by = "FT"
        if external_status in ("AET", "PEN"):
            decided_by = external_status

        return ExternalMatch(
            external_id=str(payload.get("id")) if payload.get("id") is not None else None,
            home_name=(teams.get("home") or {}).get("name"),
            away_name=(teams.get("away") or {}).get("name"),
            home_score=scores.get("home"),
            away_score=scores.get("away"),
            status=map_rugby_status(external_status),
            external_status=external_status,
            elapsed=status.get("elapsed"),
            kickoff=_parse_datetime(payload.get("date")),
            decided_by=decided_by,
            competition_name=(payload.get("league") or {}).get("name"),
        )

    def _parse_matches(self, data):
        data = data or {}
        errors = data.get("errors")
        # api-sports answers 200 with an "errors" object on bad keys or quotas
        if errors:
            raise ProviderError(f"{self.name}: {errors}")

        matches = []
        for payload in data.get("response", []):
            try:
                matches.append(self.parse_match(payload))
            except (AttributeError, TypeError) as e:
                logger.warning(f"{self.name}: skipping malformed game: {e}")
        return matches

    def get_live_matches(self):
        matches = self._parse_matches(self._get_json("/games", {"live": "all"}))
        logger.info(f"{self.name}: {len(matches)} live games")
        return matches

    def get_matches_for_date(self, day=None):
        day = day or datetime.now(timezone.utc).date()
        return self._parse_matches(self._get_json("/games", {"date": day.isoformat()}))

    def get_match(self, external_id):
        matches = self._parse_matches(self._get_json("/games", {"id": external_id}))
        return matches[0] if matches else None


def get_provider_for_sport(sport, config):
    """Build the provider for a sport from a Flask config mapping"""
    sport = (sport or "").upper()
    if sport == "FOOTBALL":
        return FootballDataProvider(
            api_key=config.get("FOOTBALL_DATA_API_KEY"),
            api_base_url=config.get("FOOTBALL_DATA_BASE_URL"),
            competition_filter=config.get("FOOTBALL_COMPETITION_FILTER"),
        )
    if sport == "RUGBY":
        return RugbyApiProvider(
            api_key=config.get("RUGBY_API_KEY"),
            api_base_url=config.get("RUGBY_API_BASE_URL"),
        )
    raise ValueError(f"Unsupported sport: {sport}")
