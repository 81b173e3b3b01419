import locale
import logging
import sys

from otto.config import CONFIG
from otto.timing import now_utc_iso, process_start_utc_iso, uptime_seconds

RESULT_LEVEL = 35


def addLoggingLevel(levelName, levelNum, methodName=None):
	"""Register `levelName` on the logging module plus a matching logger method (`levelName.lower()` by default).

	Raises AttributeError if the name or method is already taken.
	"""
	if not methodName:
		methodName = levelName.lower()

	if hasattr(logging, levelName):
		raise AttributeError(f'{levelName} already defined in logging module')
	if hasattr(logging, methodName):
		raise AttributeError(f'{methodName} already defined in logging module')
	if hasattr(logging.getLoggerClass(), methodName):
		raise AttributeError(f'{methodName} already defined in logger class')

	def logForLevel(self, message, *args, **kwargs):
		if self.isEnabledFor(levelNum):
			self._log(levelNum, message, args, **kwargs)

	def logToRoot(message, *args, **kwargs):
		logging.log(levelNum, message, *args, **kwargs)

	logging.addLevelName(levelNum, levelName)
	setattr(logging, levelName, levelNum)
	setattr(logging.getLoggerClass(), methodName, logForLevel)
	setattr(logging, methodName, logToRoot)


class SafeStreamHandler(logging.StreamHandler):
	"""A logging handler that gracefully handles consoles that can't encode every character.

	Retries writes with 'replace' on UnicodeEncodeError so a narrow console encoding never crashes a run.
	"""

	def emit(self, record):  # type: ignore[override]
		try:
			msg = self.format(record)
			stream = self.stream
			try:
				stream.write(msg + self.terminator)
			except UnicodeEncodeError:
				enc = getattr(stream, 'encoding', None) or locale.getpreferredencoding(False) or 'utf-8'
				sanitized = msg.encode(enc, errors='replace').decode(enc, errors='replace')
				stream.write(sanitized + self.terminator)
			self.flush()
		except Exception:
			self.handleError(record)


class OttoFormatter(logging.Formatter):
	def format(self, record):
		record.utc = now_utc_iso()
		record.uptime = f'{uptime_seconds():.3f}s'
		return super().format(record)


def setup_logging(stream=None, log_level=None, force_setup=False):
	"""Setup logging configuration for otto.

	Args:
		stream: Output stream for logs (default: sys.stdout).
		log_level: Override log level (default: uses CONFIG.OTTO_LOGGING_LEVEL)
		force_setup: Force reconfiguration even if handlers already exist
	"""
	try:
		addLoggingLevel('RESULT', RESULT_LEVEL)  # This allows ERROR, FATAL and CRITICAL
	except AttributeError:
		pass  # Level already exists, which is fine

	log_type = log_level or CONFIG.OTTO_LOGGING_LEVEL

	if logging.getLogger().hasHandlers() and not force_setup:
		return logging.getLogger('otto')

	root = logging.getLogger()
	root.handlers = []

	console = SafeStreamHandler(stream or sys.stdout)

	if log_type == 'result':
		console.setLevel('RESULT')
		console.setFormatter(OttoFormatter('%(message)s'))
	else:
		console.setFormatter(OttoFormatter('%(levelname)-8s [%(name)s] %(utc)s (+%(uptime)s) %(message)s'))

	root.addHandler(console)

	if log_type == 'result':
		root.setLevel('RESULT')
	elif log_type == 'debug':
		root.setLevel(logging.DEBUG)
	else:
		root.setLevel(logging.INFO)

	otto_logger = logging.getLogger('otto')
	otto_logger.propagate = False  # Don't propagate to root logger
	otto_logger.handlers = []
	otto_logger.addHandler(console)
	otto_logger.setLevel(root.level)

	otto_logger.debug(f'Logging initialized at {now_utc_iso()} (process_start={process_start_utc_iso()})')

	# Silence or adjust third-party loggers
	third_party_loggers = [
		'httpx',
		'httpcore',
		'asyncio',
		'urllib3',
		'charset_normalizer',
	]
	for logger_name in third_party_loggers:
		third_party = logging.getLogger(logger_name)
		third_party.setLevel(logging.ERROR)
		third_party.propagate = False

	return otto_logger
