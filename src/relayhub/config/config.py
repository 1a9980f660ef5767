import logging
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section
from validate import Validator

logger = logging.getLogger(__name__)

# The default extension for configuration files
config_extension = '.cfg'


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('relayhub', 'schema')
    'relayhub.schema'
    >>> config_flavor('relayhub')
    'relayhub'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an IOError is raised.
    :return: The ConfigObj instance for the file, empty when the file is optional and missing.
    """
    if not must_exist and not os.path.exists(file):
        return ConfigObj()
    try:
        return ConfigObj(file, interpolation='Template', file_error=True)
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, flavor=None) -> ConfigObj:
    """
    Loads an optional specialization of a config file, named after the base followed by a period
    and the flavor, e.g. relayhub.default.cfg
    """
    return load_config_file_base(config_filename(config_flavor(name, flavor), directory), False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    return 'osx' if name == 'darwin' else name


def os_name():
    return map_os_name(platform.system())


def load_config(name, directory, user_directory='~'):
    """
    Loads all the configuration files that relate to the given name. Later files override earlier ones:
    - the default specialization (name.default.cfg)
    - the platform specialization (name.linux.cfg, name.osx.cfg, name.windows.cfg)
    - the user override (~/name.cfg)
    - the base configuration (name.cfg)
    The merged configuration is then validated against the schema in name.schema.cfg, which also converts
    values to their declared types and supplies defaults for missing values.
    :raises ConfigObjError: when the merged configuration does not validate.
    """
    config = ConfigObj()
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(load_config_file_base(
        config_filename(name, os.path.expanduser(user_directory)), must_exist=False))
    config.merge(config_flavor_file(name, directory))

    config.configspec = config_flavor_file(name, directory, 'schema')
    result = config.validate(Validator())
    if result is not True:
        raise ConfigObjError("the config file %s failed validation %s" % (name, result))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:   The root configuration
    :param path:   An iterable of section names to descend through
    :return: The section identified by the path, or None if any part of the path is missing.
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return None
    return conf


def apply_conf(conf: Section, target):
    """
    Sets each scalar in a configuration section on the target, but only where the target
    already has an attribute of that name.
    :return: the names of the attributes set
    """
    applied = []
    for k in conf.scalars:
        if hasattr(target, k):
            setattr(target, k, conf[k])
            applied.append(k)
    return applied


def fq_module_name(module):
    if not module.__package__:
        raise ConfigObjError('module %s has no package defined' % module.__name__)
    if module.__name__ != '__main__':
        return module.__name__
    return module.__package__ + '.' + os.path.splitext(os.path.basename(module.__file__))[0]


def configure_module(module, config_name=None, user_directory='~'):
    """
    Applies the configuration to the given module.
    The configuration files are located in the module's directory and are named config_name, which defaults
    to the module's own name. The settings for the module are found in the section nested by the
    module's fully qualified name, e.g. [relayhub] [[endpoint]] for relayhub.endpoint.
    :return: the names of the module attributes that were set
    """
    fqname = fq_module_name(module)
    if not config_name:
        config_name = fqname.split('.')[-1]
    conf = load_config(config_name, os.path.dirname(module.__file__), user_directory)
    section = fetch_conf_path(conf, fqname.split('.'))
    applied = apply_conf(section, module) if section else []
    logger.debug("configured %s from %s: %s" % (fqname, config_name, applied))
    return applied
