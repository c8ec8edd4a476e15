import abc
import io
import os
import pathlib
import tomllib
import warnings

from crc64 import DEFAULT_BUFFER_SIZE


class ConfigValidator(abc.ABC):
    def __init__(self, default=None):
        self.default = default

    def __set_name__(self, cls, name):
        self.name = name
        self.key = f'_{name}'

        _items = '_items'
        if _items not in vars(cls):
            setattr(cls, _items, set())

        getattr(cls, _items).add(name)

    def __get__(self, obj, cls):
        return getattr(obj, self.key, self.default)

    def __set__(self, obj, value):
        setattr(obj, self.key, self.validate(value))

    @abc.abstractmethod
    def validate(self, value):
        pass


class Boolean(ConfigValidator):
    def __init__(self, default=False):
        super().__init__(default)

    def validate(self, value):
        if isinstance(value, bool):
            return value

        if isinstance(value, str):
            trues = ('1', 'yes', 'true')
            falses = ('0', 'no', 'false')
            lowered_value = value.lower()

            if lowered_value in trues:
                return True

            if lowered_value in falses:
                return False

            raise ValueError(
                f'Expected {value!r} to be in {trues} or {falses} for {self.name}'
            )

        raise ValueError(
            f'Expected {value!r} to be bool or boolean-like string for {self.name}'
        )


class PositiveInteger(ConfigValidator):
    def validate(self, value):
        # bool is an int.
        if isinstance(value, bool):
            raise ValueError(f'Expected {value!r} to be an integer for {self.name}')

        if isinstance(value, str):
            try:
                value = int(value, 0)
            except ValueError:
                raise ValueError(
                    f'Expected {value!r} to be an integer for {self.name}'
                ) from None

        if not isinstance(value, int):
            raise ValueError(f'Expected {value!r} to be an integer for {self.name}')

        if value < 1:
            raise ValueError(f'Expected {value!r} to be positive for {self.name}')

        return value


class ConfigBase:
    def __str__(self):
        return '\n'.join(
            f'{name} = {getattr(self, name)}'
            for name in sorted(getattr(type(self), '_items', tuple()))
        )

    @classmethod
    def environ(cls, key):
        return os.environ.get(f'{cls._env_tag.upper()}_{key.upper()}')

    @classmethod
    def load(cls, file=None, cmdline=None):
        cfg = cls.__new__(cls)

        items = cls._items

        if file is None:
            cfg_data = {}
        elif isinstance(file, (str, pathlib.Path)):
            with open(file, 'rb') as fin:
                cfg_data = tomllib.load(fin)
        else:
            cfg_data = tomllib.load(file)

        cmdline = cmdline or object()
        for key in items:
            try:
                if (val := getattr(cmdline, key, None)) is not None:
                    src = 'command line'
                    setattr(cfg, key, val)
                elif (val := cls.environ(key)) is not None:
                    src = 'environment variable'
                    setattr(cfg, key, val)
                elif (cfg_key := key.replace('_', '-')) in cfg_data:
                    src = 'configuration file'
                    setattr(cfg, key, cfg_data[cfg_key])
            except ValueError as e:
                raise ValueError(f'{e}, for {key} from {src}') from None

        if diff := set(cfg_data) - set(s.replace('_', '-') for s in items):
            warnings.warn(
                'Invalid items were specified in the configuration file: '
                f'{", ".join(sorted(diff))}',
                stacklevel=2,
            )

        return cfg

    @classmethod
    def loads(cls, cfgstr=None, cmdline=None):
        if cfgstr is None:
            return cls.load(cmdline=cmdline)

        return cls.load(file=io.BytesIO(cfgstr.encode()), cmdline=cmdline)


class S3CrcConfig(ConfigBase):
    '''Settings for ``s3crc``; see :meth:`ConfigBase.load` for precedence.'''

    _env_tag = 's3crc'

    hex = Boolean()
    uppercase = Boolean()
    json = Boolean()
    recursive = Boolean()
    jobs = PositiveInteger(1)
    buffer_size = PositiveInteger(DEFAULT_BUFFER_SIZE)

    @property
    def encoding(self):
        if self.hex:
            return 'hex'
        if self.uppercase:
            return 'HEX'

        return 'base64'

    @classmethod
    def config_file(cls, cmdline=None):
        '''Config file named on the command line or by ``S3CRC_CONFIG``.'''
        path = getattr(cmdline, 'config', None) or cls.environ('config')
        if path is None:
            return None

        path = pathlib.Path(path)
        if path.exists() and not path.is_file():
            raise ValueError(f'Given path {str(path)!r} is not a file for config')

        return path


# To be able to explicitly give a value of False or True, you can use
# ``argparse.BooleanOptionalAction`` as the ``action`` argument when adding via
# ``add_argument()``.
