"""
Address normalization for VerifyMyProvider.

Canonicalizes free-text provider addresses (ordinal numbers, street suffix
and directional abbreviations, city/state/ZIP) so that the same physical
location matches across NPI registry rows and facility directories.
"""

import hashlib
import re
import logging
from typing import Dict, Optional
import pandas as pd
import usaddress
from phonenumbers import PhoneNumberFormat
import phonenumbers
from thefuzz import fuzz

logger = logging.getLogger(__name__)

_UNIT_ORDINALS = ["", "first", "second", "third", "fourth", "fifth", "sixth",
                  "seventh", "eighth", "ninth"]
_TEENS = ["tenth", "eleventh", "twelfth", "thirteenth", "fourteenth", "fifteenth",
          "sixteenth", "seventeenth", "eighteenth", "nineteenth"]
_TENS = ["", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety"]
_TENS_ORDINALS = ["", "", "twentieth", "thirtieth", "fortieth", "fiftieth", "sixtieth",
                  "seventieth", "eightieth", "ninetieth"]


def _ordinal_word(number: int) -> str:
    if number < 10:
        return _UNIT_ORDINALS[number]
    if number < 20:
        return _TEENS[number - 10]
    if number == 100:
        return "one-hundredth"
    tens, units = divmod(number, 10)
    if units == 0:
        return _TENS_ORDINALS[tens]
    return f"{_TENS[tens]}-{_UNIT_ORDINALS[units]}"


def _ordinal_suffix(number: int) -> str:
    if 10 <= number % 100 <= 20:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


# 1 -> "first" ... 100 -> "one-hundredth"
ORDINAL_WORDS = {n: _ordinal_word(n) for n in range(1, 101)}
WORD_TO_NUMERIC_ORDINAL = {word: f"{n}{_ordinal_suffix(n)}" for n, word in ORDINAL_WORDS.items()}

STREET_SUFFIXES = {
    "st": "street", "ave": "avenue", "blvd": "boulevard", "rd": "road",
    "dr": "drive", "ln": "lane", "pl": "place", "pkwy": "parkway",
    "hwy": "highway", "tpke": "turnpike", "ctr": "center", "ct": "court",
    "cir": "circle", "sq": "square", "ter": "terrace", "expy": "expressway",
    "fwy": "freeway", "ste": "suite", "apt": "apartment", "fl": "floor",
    "bldg": "building",
}

DIRECTIONS = {
    "n": "north", "s": "south", "e": "east", "w": "west",
    "ne": "northeast", "nw": "northwest", "se": "southeast", "sw": "southwest",
}


class AddressNormalizer:
    """
    Normalizes provider addresses for consistent matching.

    Produces a canonical lowercase street form where ordinals are spelled
    out ("5th" and "Fifth" both become "fifth") and abbreviations are
    expanded ("Ave" becomes "avenue").
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize address normalizer with configuration.

        Args:
            config: Configuration dictionary (default_country_code)
        """
        config = config or {}
        self.config = config
        self.default_country = config.get("default_country_code", "US")

        # US state abbreviations mapping
        self.state_abbreviations = {
            "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
            "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
            "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
            "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
            "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
            "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
            "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
            "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
            "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
            "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
            "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
            "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
            "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC"
        }

        # Compile regex patterns
        word_ordinals = sorted(WORD_TO_NUMERIC_ORDINAL, key=len, reverse=True)
        self.word_ordinal_pattern = re.compile(r"\b(" + "|".join(word_ordinals) + r")\b")
        self.numeric_ordinal_pattern = re.compile(r"\b(\d+)(st|nd|rd|th)\b", re.IGNORECASE)
        self.suffix_pattern = re.compile(r"\b(" + "|".join(STREET_SUFFIXES) + r")\b")
        self.direction_pattern = re.compile(r"\b(" + "|".join(DIRECTIONS) + r")\b")
        self.punctuation_pattern = re.compile(r"[^\w\s-]")
        self.whitespace_pattern = re.compile(r"\s+")

        logger.debug("Initialized AddressNormalizer")

    @staticmethod
    def _is_blank(value) -> bool:
        return value is None or not isinstance(value, str) or not value.strip()

    def _numeric_to_word(self, match: re.Match) -> str:
        number = int(match.group(1))
        if number in ORDINAL_WORDS:
            return ORDINAL_WORDS[number]
        return match.group(0).lower()

    def normalize_street(self, address: str) -> str:
        """
        Canonicalize a street address line.

        Args:
            address: Raw address line (e.g. "1184 5Th Ave.")

        Returns:
            Canonical form (e.g. "1184 fifth avenue")
        """
        if self._is_blank(address):
            return ""

        normalized = self.whitespace_pattern.sub(" ", address.lower().strip())
        normalized = normalized.replace(".", "")

        # Word ordinals go numeric first so that both spellings converge
        normalized = self.word_ordinal_pattern.sub(
            lambda m: WORD_TO_NUMERIC_ORDINAL[m.group(1)], normalized)
        normalized = self.numeric_ordinal_pattern.sub(self._numeric_to_word, normalized)

        normalized = self.suffix_pattern.sub(lambda m: STREET_SUFFIXES[m.group(1)], normalized)
        normalized = self.direction_pattern.sub(lambda m: DIRECTIONS[m.group(1)], normalized)

        return normalized

    def normalize_city(self, city: str) -> str:
        """
        Normalize city name to lowercase without punctuation.
        """
        if self._is_blank(city):
            return ""

        city = self.punctuation_pattern.sub(" ", city)
        return self.whitespace_pattern.sub(" ", city).strip().lower()

    def normalize_state(self, state: str) -> str:
        """
        Normalize state name/abbreviation.

        Args:
            state: Raw state name or abbreviation

        Returns:
            Normalized 2-letter state abbreviation
        """
        if self._is_blank(state):
            return ""

        state = state.strip().lower()

        # Check if it's already a 2-letter abbreviation
        if len(state) == 2 and state.isalpha():
            return state.upper()

        return self.state_abbreviations.get(state, "")

    def normalize_zipcode(self, zipcode) -> str:
        """
        Normalize ZIP code to its first five digits.
        """
        if zipcode is None or (not isinstance(zipcode, str) and pd.isna(zipcode)):
            return ""

        digits = re.sub(r"[^\d]", "", str(zipcode))
        return digits[:5]

    def parse_address(self, address: str) -> Dict[str, str]:
        """
        Parse a single-line address into components using usaddress.

        Args:
            address: Raw address string (e.g. "600 N Wolfe St, Baltimore, MD 21287")

        Returns:
            Dictionary with address_line1, city, state and zip_code
        """
        empty = {"address_line1": "", "city": "", "state": "", "zip_code": ""}
        if self._is_blank(address):
            return empty

        try:
            parsed, _ = usaddress.tag(address)
        except usaddress.RepeatedLabelError as e:
            logger.warning(f"Failed to parse address '{address}': {e}")
            return {**empty, "address_line1": address.strip()}

        street_labels = [
            "AddressNumber", "StreetNamePreDirectional", "StreetNamePreType",
            "StreetName", "StreetNamePostType", "StreetNamePostDirectional",
            "OccupancyType", "OccupancyIdentifier",
        ]
        street_parts = [parsed[label] for label in street_labels if parsed.get(label)]

        return {
            "address_line1": " ".join(street_parts),
            "city": parsed.get("PlaceName", ""),
            "state": parsed.get("StateName", ""),
            "zip_code": parsed.get("ZipCode", ""),
        }

    def address_key(self, address_line1: str, city: str, state: str, zip_code) -> str:
        """
        Matching key for a location: canonical street, city, state, ZIP5.
        """
        return "|".join([
            self.normalize_street(address_line1),
            self.normalize_city(city),
            self.normalize_state(state),
            self.normalize_zipcode(zip_code),
        ])

    def address_hash(self, address_line1: Optional[str], city: Optional[str],
                     state: Optional[str], zip_code: Optional[str]) -> str:
        """
        SHA-256 hash identifying an address for deduplication.

        Uses lowercase trimmed address and city, uppercase state and ZIP5,
        joined with "|".
        """
        def _text(value) -> str:
            if value is None or (not isinstance(value, str) and pd.isna(value)):
                return ""
            return str(value)

        parts = "|".join([
            _text(address_line1).lower().strip(),
            _text(city).lower().strip(),
            _text(state).upper().strip(),
            _text(zip_code)[:5].strip(),
        ])
        return hashlib.sha256(parts.encode("utf-8")).hexdigest()

    def street_similarity(self, address1: str, address2: str) -> int:
        """
        Fuzzy similarity (0-100) between two street lines after canonicalization.
        """
        street1 = self.normalize_street(address1)
        street2 = self.normalize_street(address2)
        if not street1 or not street2:
            return 0
        return fuzz.token_sort_ratio(street1, street2)

    def normalize_phone(self, phone) -> str:
        """
        Normalize phone number to E164 format.

        Args:
            phone: Raw phone number

        Returns:
            Normalized phone number in E164 format, or "" if invalid
        """
        if phone is None or (not isinstance(phone, str) and pd.isna(phone)):
            return ""

        phone = str(phone).strip()
        if not phone:
            return ""

        try:
            parsed_phone = phonenumbers.parse(phone, self.default_country)
        except phonenumbers.NumberParseException as e:
            logger.debug(f"Failed to normalize phone '{phone}': {e}")
            return ""

        if not phonenumbers.is_valid_number(parsed_phone):
            return ""

        return phonenumbers.format_number(parsed_phone, PhoneNumberFormat.E164)

    def normalize_dataframe(self, df: pd.DataFrame,
                            address_column: str = "address_line1",
                            city_column: str = "city",
                            state_column: str = "state",
                            zip_column: str = "zip_code") -> pd.DataFrame:
        """
        Add normalized address columns to a DataFrame.

        Args:
            df: Input DataFrame
            address_column: Column with street address
            city_column: Column with city
            state_column: Column with state
            zip_column: Column with ZIP code

        Returns:
            DataFrame with address_norm, city_norm, state_norm, zip_norm and
            address_key columns
        """
        result_df = df.copy()

        def _column(name):
            if name in result_df.columns:
                return result_df[name]
            return pd.Series([""] * len(result_df), index=result_df.index)

        result_df["address_norm"] = _column(address_column).apply(self.normalize_street)
        result_df["city_norm"] = _column(city_column).apply(self.normalize_city)
        result_df["state_norm"] = _column(state_column).apply(self.normalize_state)
        result_df["zip_norm"] = _column(zip_column).apply(self.normalize_zipcode)
        result_df["address_key"] = (
            result_df["address_norm"] + "|" + result_df["city_norm"] + "|" +
            result_df["state_norm"] + "|" + result_df["zip_norm"]
        )

        logger.info(f"Normalized addresses for {len(result_df)} records")
        return result_df
