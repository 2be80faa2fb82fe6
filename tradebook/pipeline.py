"""
Import Pipeline

Entry points that take one batch of raw input (CSV text, API transaction
objects or a pasted block) plus a declared venue and return closed trades
with the diagnostic log that explains them.
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .adapters import AdapterShape, BaseAdapter, select_api_adapter, select_csv_adapter
from .adapters.herofx import HeroFXCompleteHistoryAdapter, paste_to_records
from .models import ImportFailure, ImportResult, StructuralImportError, Venue
from .reconciliation.aggregator import aggregate_positions
from .reconciliation.diagnostics import DiagnosticLog
from .reconciliation.expiration import resolve_expirations
from .reconciliation.matcher import FifoMatcher
from .reconciliation.pnl import PnlCalculator
from .utils.config import deep_merge
from .utils.structured_logging import ImportContext, ImportLogger, import_timer

logger = logging.getLogger(__name__)

HEADER_KEYWORDS = ['contracts', 'symbol', 'pair', 'price', 'qty', 'amount', 'time', 'date', 'pnl', 'market']


class ImportPipeline:
    """
    Runs one import batch from raw input to final trades.

    Each call builds its own matcher, so a pipeline instance can be shared
    across threads and concurrent batches never see each other's queues.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, as_of: Optional[datetime] = None):
        """
        Initialize pipeline with configuration

        Args:
            config: Overrides deep-merged over the default configuration
            as_of: Reference time for option expiration, defaults to now
        """
        self.config = deep_merge(self._default_config(), config or {})
        self.as_of = as_of

        header = self.config['header_detection']
        self.scan_lines = int(header['scan_lines'])
        self.min_keyword_hits = int(header['min_keyword_hits'])
        self.header_keywords = [k.lower() for k in header['keywords']]
        self.calculator = PnlCalculator(self.config['multipliers'])

    def _default_config(self) -> Dict[str, Any]:
        """Default import configuration"""
        return {
            'header_detection': {
                'scan_lines': 25,
                'min_keyword_hits': 2,
                'keywords': list(HEADER_KEYWORDS)
            },
            'multipliers': {
                'option': 100,
                'contract_sizes': {'XAG': 5000, 'XAU': 100}
            },
            'timezones': {
                'HeroFX': 'Europe/Helsinki'
            },
            'validation': {
                'max_price': 1_000_000
            },
            'aggregation': {
                'enabled': True
            }
        }

    def import_csv(self, text: str, venue: Union[str, Venue], source: Optional[str] = None) -> ImportResult:
        """
        Import a delimited export

        Args:
            text: Full file contents
            venue: Declared venue; selects the adapter
            source: Optional file name for log context

        Returns:
            ImportResult with trades, logs and open positions

        Raises:
            StructuralImportError: Empty input, no header row, unreadable CSV
            UnsupportedVenueError: Venue has no CSV adapter
        """
        venue = Venue.from_name(venue)
        log = DiagnosticLog()
        import_logger = self._import_logger(venue, source)
        import_logger.batch_event('started', venue.value, f"Importing {venue.value} CSV")

        try:
            with import_timer(import_logger, 'import_csv'):
                headers, records = self.read_records(text, log)
                adapter = select_csv_adapter(venue, headers, self.config, log)
                result = self._run(adapter, records, log, venue, import_logger)
        except ImportFailure as e:
            if not e.logs:
                e.logs = log.entries
            import_logger.batch_event('failed', venue.value, str(e))
            raise

        return result

    def import_file(self, file_path: Union[str, Path], venue: Union[str, Venue]) -> ImportResult:
        """Read a CSV file and import it"""
        file_path = Path(file_path)
        try:
            text = file_path.read_text(encoding='utf-8-sig')
        except (OSError, UnicodeDecodeError) as e:
            raise StructuralImportError(f"Could not read {file_path}: {e}",
                                        [f"File unreadable: {file_path}"]) from e
        return self.import_csv(text, venue, source=file_path.name)

    def import_api_transactions(self, transactions: Sequence[Mapping[str, Any]],
                                venue: Union[str, Venue]) -> ImportResult:
        """Import brokerage or exchange API transaction objects"""
        venue = Venue.from_name(venue)
        log = DiagnosticLog()
        import_logger = self._import_logger(venue, 'api')
        import_logger.batch_event('started', venue.value, f"Importing {len(transactions)} {venue.value} API records")

        adapter = select_api_adapter(venue, self.config)
        log.append(f"Using {venue.value} {adapter.format_name} adapter")
        with import_timer(import_logger, 'import_api_transactions'):
            return self._run(adapter, list(transactions), log, venue, import_logger)

    def import_paste(self, text: str, venue: Union[str, Venue] = Venue.HEROFX) -> ImportResult:
        """Import a tab-separated block pasted from the TradeLocker terminal"""
        venue = Venue.from_name(venue)
        log = DiagnosticLog()
        import_logger = self._import_logger(venue, 'paste')

        if not text or not text.strip():
            raise StructuralImportError("Pasted data is empty", ["Empty paste"])

        try:
            records = paste_to_records(text, log)
        except ImportFailure as e:
            import_logger.batch_event('failed', venue.value, str(e))
            raise

        adapter = HeroFXCompleteHistoryAdapter(venue.value, self.config)
        result = self._run(adapter, records, log, venue, import_logger)
        log.section(f"{len(result.trades)} trade(s) imported")
        result.logs = log.entries
        return result

    def detect_header(self, lines: Sequence[str], log: DiagnosticLog) -> int:
        """
        Find the header row among preamble/metadata lines

        Returns:
            Index of the first line containing enough header keywords

        Raises:
            StructuralImportError: If no line within the scan window qualifies
        """
        for i, line in enumerate(lines[:self.scan_lines]):
            lowered = line.lower()
            hits = sum(1 for keyword in self.header_keywords if keyword in lowered)
            if hits >= self.min_keyword_hits:
                log.append(f"Detected header at row {i}: {line.strip()}")
                return i

        log.append(f"No header row found in the first {self.scan_lines} lines")
        raise StructuralImportError("No header row found", log.entries)

    def read_records(self, text: str, log: DiagnosticLog) -> Tuple[List[str], List[Dict[str, str]]]:
        """
        Split CSV text into cleaned headers and raw string records

        Raises:
            StructuralImportError: Empty input, no header row, unparseable CSV
        """
        if not text or not text.strip():
            log.append("Input is empty")
            raise StructuralImportError("Empty file", log.entries)

        lines = text.lstrip('﻿').splitlines()
        log.append(f"Processing {len(lines)} lines")
        header_index = self.detect_header(lines, log)

        bad_lines = []

        def _on_bad_line(fields: List[str]) -> None:
            bad_lines.append(fields)
            return None

        try:
            df = pd.read_csv(
                io.StringIO("\n".join(lines[header_index:])),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                engine='python',
                on_bad_lines=_on_bad_line,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
            log.append(f"CSV parsing failed: {e}")
            raise StructuralImportError(f"CSV parsing failed: {e}", log.entries) from e

        if bad_lines:
            log.append(f"Skipped {len(bad_lines)} malformed lines with extra fields")

        df.columns = [str(c).strip().strip('"\'').strip() for c in df.columns]
        unnamed = [c for c in df.columns if c.startswith('Unnamed:') or not c]
        if unnamed:
            df = df.drop(columns=unnamed)

        headers = list(df.columns)
        log.append(f"Parsed {len(df)} rows")
        log.append(f"Headers found: {headers}")
        return headers, df.to_dict('records')

    def _run(self, adapter: BaseAdapter, records: List[Mapping[str, Any]], log: DiagnosticLog,
             venue: Venue, import_logger: ImportLogger) -> ImportResult:
        output = adapter.parse(records, log)
        open_positions = []

        if output.shape is AdapterShape.DIRECT:
            trades = list(output.trades)
        else:
            matcher = FifoMatcher(venue.value, log, self.calculator)
            matched = matcher.run(output.fills)
            log.append(f"FIFO matching: {len(output.fills)} fills -> {len(matched)} matched trades")
            import_logger.match_event(venue.value, len(output.fills), len(matched),
                                      f"Matched {len(matched)} trades")

            if self.config['aggregation']['enabled']:
                trades = aggregate_positions(matched, log)
            else:
                trades = matched

            expired, still_open = resolve_expirations(
                matcher.residual_positions(), venue.value, self.as_of, log)
            trades.extend(expired)

            for position in still_open:
                log.append(f"Open position: {position.ticker} - {position.remaining_quantity:g} "
                           f"{position.direction.value} still held")
            open_positions = [p.to_summary() for p in still_open]

            for instrument, quantity in matcher.unmatched_quantity.items():
                import_logger.data_quality_event('unmatched_close', f"Unmatched closing quantity for {instrument}",
                                                 instrument=instrument, quantity=quantity)

        log.append(f"Generated {len(trades)} trades from {venue.value} {adapter.format_name}")
        import_logger.batch_event('completed', venue.value, f"Imported {len(trades)} trades",
                                  trade_count=len(trades), skipped_rows=output.skipped)
        return ImportResult(trades=trades, logs=log.entries, venue=venue.value,
                            open_positions=open_positions)

    def _import_logger(self, venue: Venue, source: Optional[str]) -> ImportLogger:
        return ImportLogger(__name__, ImportContext.create(venue=venue.value, source=source))


@dataclass
class ImportBatch:
    """One independent unit of work for ``sync_all``"""
    venue: Union[str, Venue]
    text: Optional[str] = None
    transactions: Optional[Sequence[Mapping[str, Any]]] = None
    paste: bool = False


def run_batch(batch: ImportBatch, pipeline: Optional[ImportPipeline] = None) -> ImportResult:
    """Dispatch one batch to the matching entry point"""
    pipeline = pipeline or ImportPipeline()
    if batch.transactions is not None:
        return pipeline.import_api_transactions(batch.transactions, batch.venue)
    if batch.paste:
        return pipeline.import_paste(batch.text or "", batch.venue)
    return pipeline.import_csv(batch.text or "", batch.venue)


async def sync_all(batches: Sequence[ImportBatch],
                   pipeline: Optional[ImportPipeline] = None) -> List[Union[ImportResult, ImportFailure]]:
    """
    Run independent batches in parallel

    Returns:
        One entry per batch, in input order: the ImportResult, or the
        ImportFailure that batch raised
    """
    pipeline = pipeline or ImportPipeline()
    results = await asyncio.gather(
        *(asyncio.to_thread(run_batch, batch, pipeline) for batch in batches),
        return_exceptions=True,
    )

    outcomes: List[Union[ImportResult, ImportFailure]] = []
    for batch, result in zip(batches, results):
        if isinstance(result, ImportFailure):
            logger.warning(f"Batch for {batch.venue} failed: {result}")
        elif isinstance(result, BaseException):
            raise result
        outcomes.append(result)
    return outcomes


def import_csv(text: str, venue: Union[str, Venue], config: Optional[Dict[str, Any]] = None) -> ImportResult:
    """Convenience function to import CSV text"""
    return ImportPipeline(config).import_csv(text, venue)


def import_file(file_path: Union[str, Path], venue: Union[str, Venue],
                config: Optional[Dict[str, Any]] = None) -> ImportResult:
    """Convenience function to import a CSV file"""
    return ImportPipeline(config).import_file(file_path, venue)


def import_api_transactions(transactions: Sequence[Mapping[str, Any]], venue: Union[str, Venue],
                            config: Optional[Dict[str, Any]] = None) -> ImportResult:
    """Convenience function to import API transaction objects"""
    return ImportPipeline(config).import_api_transactions(transactions, venue)


def import_paste(text: str, config: Optional[Dict[str, Any]] = None) -> ImportResult:
    """Convenience function to import a pasted TradeLocker block"""
    return ImportPipeline(config).import_paste(text)
